"""Exception hierarchy for tenant resource pools."""

from __future__ import annotations


class GStateError(Exception):
    """Base exception for global state operations."""


class ValidationError(GStateError):
    """Configuration rejected before any operational state is built."""


class TagRangeError(ValidationError):
    """A VLAN/VXLAN range expression could not be parsed."""


class VersionUnsupported(ValidationError):
    """Configuration carries a version this code does not understand."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"unsupported version {version!r}")


class ResourceExhaustion(GStateError):
    """No free id left in a pool."""


class NoVlansAvailable(ResourceExhaustion):
    def __init__(self) -> None:
        super().__init__("no vlans available")


class NoLocalVlansAvailable(ResourceExhaustion):
    def __init__(self) -> None:
        super().__init__("no local vlans available")


class NoVxlansAvailable(ResourceExhaustion):
    def __init__(self) -> None:
        super().__init__("no vxlans available")


class SubnetExhaustion(ResourceExhaustion):
    def __init__(self) -> None:
        super().__init__("subnet exhaustion")


class InvalidResourceState(GStateError):
    """The requested id cannot be moved into the requested state."""


class VlanNotAvailable(InvalidResourceState):
    def __init__(self, vlan: int):
        self.vlan = vlan
        super().__init__(f"specified vlan {vlan} not available")


class TagOutOfRange(InvalidResourceState):
    def __init__(self, kind: str, tag: int):
        self.kind = kind
        self.tag = tag
        super().__init__(f"{kind} {tag} is outside the pool")


class ConversionError(GStateError):
    """Subnet index and address could not be mapped onto each other."""


class StateNotFound(GStateError):
    """Requested key does not exist in the backing store."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"state not found for key {key}")
