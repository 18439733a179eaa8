from xencaps import version


def test_reads_version_file(tmp_path, monkeypatch):
    path = tmp_path / "VERSION"
    path.write_text("1.2.3\n")
    monkeypatch.setattr(version, "_VERSION_FILE", path)
    assert version.get_version() == "1.2.3"


def test_falls_back_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.setattr(version, "_VERSION_FILE", tmp_path / "missing")
    monkeypatch.setattr(version.metadata, "version", lambda name: "9.9.9")
    assert version.get_version() == "9.9.9"
