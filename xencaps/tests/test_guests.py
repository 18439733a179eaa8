"""Tests for guest capability string parsing."""
from __future__ import annotations

from unittest.mock import patch

import pytest

from xencaps.arch import Arch
from xencaps.capabilities import Capabilities, Guest, OSType
from xencaps.errors import (
    AllocationError,
    CapabilitiesMissingError,
    HostQueryError,
    RegexCompileError,
)
from xencaps.guests import MAX_GUEST_ARCHS, _cap_pattern, init_guests, parse_guest_archs
from xencaps.tests.conftest import FakeToolstack


def _caps() -> Capabilities:
    return Capabilities(Arch.X86_64, suspend_supported=True, resume_supported=True)


def _features(guest: Guest) -> dict[str, tuple[bool, bool]]:
    return {f.name: (f.default_on, f.toggle) for f in guest.features}


class TestParseGuestArchs:
    def test_merges_pae_and_nonpae(self):
        profiles = parse_guest_archs("xen-3.0-x86_32p xen-3.0-x86_32 hvm-3.0-x86_64")

        assert [(p.arch, p.hvm) for p in profiles] == [(Arch.I686, False), (Arch.X86_64, True)]
        assert profiles[0].pae is True
        assert profiles[0].nonpae is True
        assert profiles[1].pae is False
        assert profiles[1].nonpae is False

    def test_flag_not_reset_by_later_token(self):
        profiles = parse_guest_archs("hvm-3.0-x86_32p hvm-3.0-x86_32p hvm-3.0-x86_32")
        assert len(profiles) == 1
        assert profiles[0].pae and profiles[0].nonpae

    def test_modes_are_distinct_keys(self):
        profiles = parse_guest_archs("xen-3.0-x86_64 hvm-3.0-x86_64 xen-3.0-x86_64")
        assert [(p.arch, p.hvm) for p in profiles] == [(Arch.X86_64, False), (Arch.X86_64, True)]

    def test_all_architectures(self):
        text = (
            "xen-3.0-aarch64 xen-3.0-armv7l xen-3.0-x86_32 "
            "xen-3.0-x86_64 xen-3.0-ia64 xen-3.0-powerpc64"
        )
        archs = [p.arch for p in parse_guest_archs(text)]
        assert archs == [Arch.AARCH64, Arch.ARMV7L, Arch.I686, Arch.X86_64, Arch.ITANIUM, Arch.PPC64]

    def test_ia64_big_endian(self):
        profiles = parse_guest_archs("xen-3.0-ia64 xen-3.0-ia64be")
        assert len(profiles) == 1
        assert profiles[0].ia64_be is True
        assert profiles[0].pae is False and profiles[0].nonpae is False

    def test_suffix_ignored_on_other_archs(self):
        (profile,) = parse_guest_archs("hvm-3.0-x86_64p")
        assert (profile.pae, profile.nonpae, profile.ia64_be) == (False, False, False)

    def test_x86_32_be_suffix_is_nonpae(self):
        (profile,) = parse_guest_archs("xen-3.0-x86_32be")
        assert profile.nonpae is True
        assert profile.pae is False

    @pytest.mark.parametrize("text", ["", "   ", "foo bar", "XEN-3.0-x86_64", "xen-3-x86_64", "kvm-1.0-x86_64"])
    def test_non_matching_yields_nothing(self, text):
        assert parse_guest_archs(text) == []

    def test_ignores_unknown_tokens_between_matches(self):
        profiles = parse_guest_archs("garbage xen-4.17-x86_64  hvm-4.17-x86_32p nonsense")
        assert [(p.arch, p.hvm) for p in profiles] == [(Arch.X86_64, False), (Arch.I686, True)]

    def test_bounded_number_of_profiles(self):
        with patch("xencaps.guests.MAX_GUEST_ARCHS", 2):
            profiles = parse_guest_archs(
                "xen-3.0-x86_64 hvm-3.0-x86_64 xen-3.0-ia64 xen-3.0-x86_64"
            )
        assert [(p.arch, p.hvm) for p in profiles] == [(Arch.X86_64, False), (Arch.X86_64, True)]

    def test_known_key_still_merges_at_bound(self):
        with patch("xencaps.guests.MAX_GUEST_ARCHS", 1):
            profiles = parse_guest_archs("xen-3.0-x86_32 hvm-3.0-x86_64 xen-3.0-x86_32p")
        assert len(profiles) == 1
        assert profiles[0].pae and profiles[0].nonpae

    def test_default_bound(self):
        assert MAX_GUEST_ARCHS == 32

    def test_bad_pattern_raises_regex_compile_error(self):
        with pytest.raises(RegexCompileError):
            _cap_pattern("(xen|hvm")


class TestInitGuests:
    def test_pv_and_hvm_entries(self):
        caps = _caps()
        init_guests(FakeToolstack(capabilities="xen-3.0-x86_32p xen-3.0-x86_32 hvm-3.0-x86_64"), caps)

        assert len(caps.guests) == 2
        pv, hvm = caps.guests

        assert pv.os_type == OSType.XEN
        assert pv.arch == Arch.I686
        assert pv.machines == ["xenpv"]
        assert pv.loader is None
        assert pv.emulator == "/usr/lib/xen/bin/qemu-system-i386"
        assert _features(pv) == {"pae": (True, False), "nonpae": (True, False)}
        assert [d.virt_type for d in pv.domains] == ["xen"]

        assert hvm.os_type == OSType.HVM
        assert hvm.arch == Arch.X86_64
        assert hvm.machines == ["xenfv"]
        assert hvm.loader == "/usr/lib/xen/boot/hvmloader"
        assert hvm.emulator == "/usr/lib/xen/bin/qemu-system-i386"
        assert _features(hvm) == {
            "acpi": (True, True),
            "apic": (True, False),
            "hap": (True, True),
        }

    def test_ia64_be_feature(self):
        caps = _caps()
        init_guests(FakeToolstack(capabilities="xen-3.0-ia64be"), caps)
        assert _features(caps.guests[0]) == {"ia64_be": (True, False)}

    def test_paths_follow_settings(self, monkeypatch):
        from xencaps.config import settings

        monkeypatch.setattr(settings, "execbin_dir", "/opt/xen/bin")
        monkeypatch.setattr(settings, "firmware_dir", "/opt/xen/boot")
        caps = _caps()
        init_guests(FakeToolstack(capabilities="hvm-4.0-x86_64"), caps)

        assert caps.guests[0].emulator == "/opt/xen/bin/qemu-system-i386"
        assert caps.guests[0].loader == "/opt/xen/boot/hvmloader"

    @pytest.mark.parametrize("text", ["", "nothing to see here"])
    def test_empty_string_succeeds(self, text):
        caps = _caps()
        init_guests(FakeToolstack(capabilities=text), caps)
        assert caps.guests == []

    def test_missing_string_is_error(self):
        with pytest.raises(CapabilitiesMissingError):
            init_guests(FakeToolstack(capabilities=None), _caps())

    def test_version_query_failure(self, failing_query):
        with pytest.raises(HostQueryError, match="version info"):
            init_guests(FakeToolstack(capabilities=failing_query), _caps())

    def test_emission_failure_removes_added_guests(self):
        caps = _caps()
        original = Guest.add_feature

        def fail_on_hap(self, name, default_on, toggle):
            if name == "hap":
                raise AllocationError("no room")
            return original(self, name, default_on, toggle)

        with patch.object(Guest, "add_feature", fail_on_hap):
            with pytest.raises(AllocationError):
                init_guests(FakeToolstack(capabilities="xen-3.0-x86_64 hvm-3.0-x86_64"), caps)

        assert caps.guests == []
