"""Errors raised while building host capabilities."""


class ToolstackError(Exception):
    """A query against the hypervisor toolstack failed."""


class CapabilityError(Exception):
    """Base class for failures that abort a capability build step."""


class HostQueryError(CapabilityError):
    """Host physical info could not be read from the toolstack."""


class TopologyQueryError(CapabilityError):
    """NUMA or CPU topology information could not be read."""


class CapabilitiesMissingError(CapabilityError):
    """The toolstack reported no guest capability string."""


class RegexCompileError(CapabilityError):
    """The guest capability pattern failed to compile."""


class AllocationError(CapabilityError):
    """An entry could not be added to the capability object."""


class NodeInfoError(CapabilityError):
    """Node information could not be read from the operating system."""
