"""Components the default use cases run against.

Built once by the app at startup and passed to each route-table builder.
"""

from dataclasses import dataclass

from keel.appstate.gate import AppStateGate
from keel.auth.accounts import AccountService
from keel.auth.engine import AuthenticationEngine
from keel.auth.tokens import TokenService
from keel.authz.engine import AuthorizationEngine
from keel.config import AppConfig
from keel.roles import RoleCatalog
from keel.validation.schemas import SchemaValidator


@dataclass(frozen=True, slots=True)
class Services:
    config: AppConfig
    tokens: TokenService
    authentication: AuthenticationEngine
    accounts: AccountService
    authorization: AuthorizationEngine
    roles: RoleCatalog
    gate: AppStateGate
    validator: SchemaValidator
