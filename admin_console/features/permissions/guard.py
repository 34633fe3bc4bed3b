"""
Route guard: turns a principal and a required capability list into an
access decision for the UI/route layer.

The guard never raises. Rendering or redirecting on the decision is up to
the caller; ``GuardDecision.redirect_path`` names where to send the user.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from admin_console.core import config
from admin_console.features.permissions.capabilities import Capability, parse_capabilities
from admin_console.features.permissions.exceptions import ValidationError
from admin_console.features.users.principal import Principal
from admin_console.utils import get_logger


log = get_logger(__name__)


class GuardState(str, Enum):
    CHECKING = "checking"
    AUTHORIZED = "authorized"
    UNAUTHORIZED = "unauthorized"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class GuardDecision:
    state: GuardState
    missing: Optional[Capability] = None
    error: Optional[Exception] = None

    @property
    def authorized(self) -> bool:
        return self.state is GuardState.AUTHORIZED

    @property
    def redirect_path(self) -> Optional[str]:
        if self.state is GuardState.UNAUTHENTICATED:
            return config.LOGIN_PATH
        if self.state is GuardState.UNAUTHORIZED:
            return config.UNAUTHORIZED_PATH
        return None


class RouteGuard:
    """
    Gate for a protected operation or view.

    Starts in ``CHECKING`` and moves to a terminal state on ``decide``.
    ``decide`` may be called again, e.g. with a re-resolved principal.
    """

    def __init__(self, required: Iterable[Union[str, Capability]] = ()):
        self.required = tuple(required)
        self.state = GuardState.CHECKING

    def decide(self, principal: Optional[Principal]) -> GuardDecision:
        decision = self._evaluate(principal)
        self.state = decision.state
        return decision

    def _evaluate(self, principal: Optional[Principal]) -> GuardDecision:
        if principal is None:
            return GuardDecision(GuardState.UNAUTHENTICATED)

        # A malformed requirement is refused for every principal, administrators included
        try:
            required = parse_capabilities(self.required)
        except ValidationError as e:
            log.warning("Route guard rejected malformed requirement for user %s: %s", principal.user_id, e)
            return GuardDecision(GuardState.UNAUTHORIZED, error=e)

        if principal.admin_bypass or not required:
            return GuardDecision(GuardState.AUTHORIZED)

        missing = principal.first_missing(required)
        if missing is not None:
            log.debug("Route guard denied user %s: missing %s", principal.user_id, missing)
            return GuardDecision(GuardState.UNAUTHORIZED, missing=missing)
        return GuardDecision(GuardState.AUTHORIZED)
