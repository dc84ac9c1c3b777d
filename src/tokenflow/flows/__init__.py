"""Grant-flow engines.

Public API:
    :class:`FlowEngine` -- the common engine contract.
    :class:`ClientCredentialsFlow`, :class:`DeviceCodeFlow`,
    :class:`AuthorizationCodeFlow` -- one engine per :class:`~tokenflow.models.FlowKind`.
    :class:`RefreshCoordinator` -- refresh-token rotation.
"""

from tokenflow.flows.authorization_code import AuthorizationCodeFlow, AuthorizationPhase, extract_code
from tokenflow.flows.base import FlowEngine, RefreshableFlowEngine
from tokenflow.flows.client_credentials import ClientCredentialsFlow
from tokenflow.flows.device_code import DeviceCodeFlow
from tokenflow.flows.refresh import RefreshCoordinator

__all__ = [
    "AuthorizationCodeFlow",
    "AuthorizationPhase",
    "ClientCredentialsFlow",
    "DeviceCodeFlow",
    "FlowEngine",
    "RefreshCoordinator",
    "RefreshableFlowEngine",
    "extract_code",
]
