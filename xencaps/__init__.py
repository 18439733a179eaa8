"""Xen host capability discovery."""
