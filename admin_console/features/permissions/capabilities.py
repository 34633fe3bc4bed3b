"""
Capability values and the ``"resource.action"`` string format.

Capability strings are parsed once at the boundary into ``Capability``
tuples; everything past the boundary compares tuples.
"""
from typing import Iterable, NamedTuple, Union

from admin_console.features.permissions.exceptions import ValidationError


WILDCARD = "all"


class Capability(NamedTuple):
    """A (resource, action) pair, e.g. ``Capability("users", "view")``."""
    resource: str
    action: str

    @classmethod
    def of(cls, resource: str, action: str) -> "Capability":
        """Build a capability from separate parts, normalising case."""
        resource = (resource or "").strip().lower()
        action = (action or "").strip().lower()
        if not resource or not action:
            raise ValidationError("Permission resource and action must not be empty")
        if "." in resource or "." in action:
            raise ValidationError("Permission resource and action must not contain dots")
        return cls(resource, action)

    @classmethod
    def parse(cls, value: Union[str, "Capability"]) -> "Capability":
        """
        Parse a ``"resource.action"`` string.

        Raises:
            ValidationError: If the string has no dot, more than one dot, or
                an empty resource or action.
        """
        if isinstance(value, Capability):
            return value
        if not isinstance(value, str):
            raise ValidationError(f"Invalid permission format: {value!r}. Should be 'resource.action'")

        resource, dot, action = value.partition(".")
        if not dot or not resource.strip() or not action.strip() or "." in action:
            raise ValidationError(f"Invalid permission format: {value!r}. Should be 'resource.action'")
        return cls.of(resource, action)

    @property
    def is_wildcard(self) -> bool:
        return self.resource == WILDCARD and self.action == WILDCARD

    def grants(self, required: "Capability") -> bool:
        """True if holding this capability satisfies ``required``."""
        return self.is_wildcard or self == required

    def __str__(self) -> str:
        return f"{self.resource}.{self.action}"


WILDCARD_CAPABILITY = Capability(WILDCARD, WILDCARD)


def parse_capabilities(values: Iterable[Union[str, Capability]]) -> list[Capability]:
    """Parse every capability up front so a bad entry fails before any check runs."""
    return [Capability.parse(value) for value in values]


# Fixed capability list granted to the administrator role when the
# administrator bypass is enabled.
ADMIN_CAPABILITIES: tuple[Capability, ...] = tuple(parse_capabilities([
    "users.view", "users.create", "users.edit", "users.delete",
    "products.view", "products.create", "products.edit", "products.delete", "products.moderate",
    "dealers.view", "dealers.create", "dealers.edit", "dealers.approve",
    "roles.view", "roles.manage",
    "analytics.view",
    "support.view",
]))
