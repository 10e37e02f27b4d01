# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_enclave

"""
Shade Agent Client.

The public facade: creates the agent identity once, keeps its keys reconciled with the
ledger and exposes the contract operations. Every public coroutine passes its failures
through the redactor before they leave the client.
"""

import functools
import json
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar, Union

import anyio
import httpx
from pydantic import ValidationError

from shade_agent import attestation as attestation_assembly
from shade_agent.exceptions import AccountNotFoundError, ConfigurationError, ContractCallError, SecretExportError
from shade_agent.hardware.factory import get_hardware_capability
from shade_agent.hardware.interfaces import HardwareCapability
from shade_agent.identity import IdentityMaterial, generate_identity
from shade_agent.keys import KeyLifecycleManager
from shade_agent.ledger import operations
from shade_agent.ledger.interfaces import DEFAULT_FUNCTION_CALL_GAS, FunctionCallAction, LedgerProvider
from shade_agent.ledger.rpc import JsonRpcProvider
from shade_agent.redaction import to_throwable
from shade_agent.schemas import AgentStatus, Attestation, ShadeConfig
from shade_agent.utils.logger import logger

# 250 TGas
REGISTER_GAS = 250_000_000_000_000

EXPORT_WARNING = (
    "WARNING: Exporting private keys from the library is a risky operation, you may accidentally leak them "
    "from the TEE. Do not use the keys to sign transactions other than to the agent contract."
)
EXPORT_ACKNOWLEDGE = "Please acknowledge the risk by setting acknowledge_risk to True."

# Location labels for fields whose names trip the keyword redaction rule.
_FIELD_LABELS = {"private_key": "secret"}

T = TypeVar("T")

_CREATE_TOKEN = object()


def redact_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Re-raise any failure of ``func`` as a redacted exception without its cause chain."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            raise to_throwable(e) from None

    return wrapper


def validate_config(config: Union[ShadeConfig, Mapping[str, Any], None]) -> ShadeConfig:
    """
    Build a ShadeConfig, turning validation failures into ConfigurationError.

    Only the field location and the message are reported, never the offending input.
    """
    if isinstance(config, ShadeConfig):
        return config
    try:
        return ShadeConfig(**dict(config or {}))
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(_FIELD_LABELS.get(str(part), str(part)) for part in err['loc'])}: "
            f"{err['msg'].removeprefix('Value error, ')}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {details}") from None


def _encode_args(args: Union[bytes, Mapping[str, Any], None]) -> bytes:
    if args is None:
        return b"{}"
    if isinstance(args, (bytes, bytearray)):
        return bytes(args)
    return json.dumps(dict(args), default=_json_default).encode("utf-8")


def _json_default(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class ShadeClient:
    """
    Client of a Shade Agent.

    Build instances with ``create_client`` (or ``ShadeClient.create``); the constructor
    is private.
    """

    def __init__(
        self,
        token: object,
        config: ShadeConfig,
        provider: LedgerProvider,
        capability: Optional[HardwareCapability],
        identity: IdentityMaterial,
        http_client: Optional[httpx.AsyncClient] = None,
        owns_provider: bool = False,
    ) -> None:
        if token is not _CREATE_TOKEN:
            raise TypeError("ShadeClient cannot be instantiated directly, use create_client()")
        self.config = config
        self.provider = provider
        self.capability = capability
        self.identity = identity
        self._http_client = http_client
        self._owns_provider = owns_provider
        self.keys = KeyLifecycleManager(
            identity=identity,
            provider=provider,
            capability=capability,
            num_keys=config.num_keys,
            derivation_path=config.derivation_path,
        )

    @classmethod
    async def create(
        cls,
        config: Union[ShadeConfig, Mapping[str, Any], None] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "ShadeClient":
        return await create_client(config, http_client=http_client)

    async def __aenter__(self) -> "ShadeClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the hardware client and, when created here, the RPC provider."""
        if self.capability is not None:
            await self.capability.aclose()
        if self._owns_provider and isinstance(self.provider, JsonRpcProvider):
            await self.provider.aclose()

    @property
    def in_tee(self) -> bool:
        return self.capability is not None

    def account_id(self) -> str:
        return self.identity.account_id

    def _require_contract(self, purpose: str) -> str:
        if not self.config.agent_contract_id:
            raise ConfigurationError(f"agent_contract_id is required for {purpose}")
        return self.config.agent_contract_id

    @redact_errors
    async def balance(self) -> float:
        """
        Balance of the agent account in NEAR.

        Returns:
            float: The balance, or 0 if the account does not exist yet.
        """
        try:
            yocto = await self.provider.get_balance(self.identity.account_id)
        except AccountNotFoundError:
            return 0.0
        return operations.yocto_to_near(yocto)

    async def _view(self, contract_id: str, method_name: str, args: Dict[str, Any], block_query: Any = None) -> Any:
        return await self.provider.call_function(contract_id, method_name, args, block_query)

    @redact_errors
    async def view(
        self, method_name: str, args: Optional[Dict[str, Any]] = None, block_query: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Call a view function on the agent contract."""
        contract_id = self._require_contract("view calls")
        return await self._view(contract_id, method_name, args or {}, block_query)

    @redact_errors
    async def registration_status(self) -> AgentStatus:
        """Registration status of this agent in the agent contract."""
        contract_id = self._require_contract("checking registration status")
        result = await self._view(contract_id, "get_agent", {"account_id": self.identity.account_id})
        if result is None:
            return AgentStatus()
        return AgentStatus(
            registered=bool(result.get("registered")),
            whitelisted=bool(result.get("whitelisted")),
            codehash_is_approved=bool(result.get("codehash_is_approved")),
        )

    @redact_errors
    async def is_whitelisted(self) -> Optional[bool]:
        """
        Whether this agent is whitelisted for local (non-TEE) mode.

        Returns:
            Optional[bool]: None when the contract requires a TEE, where whitelisting
            does not apply; otherwise whether the agent is on the local whitelist.
        """
        contract_id = self._require_contract("checking if the agent is whitelisted")
        requires_tee = await self._view(contract_id, "get_requires_tee", {})
        if requires_tee:
            return None
        whitelisted: List[str] = await self._view(contract_id, "get_whitelisted_agents_for_local", {}) or []
        return self.identity.account_id in whitelisted

    async def _call(
        self,
        contract_id: str,
        method_name: str,
        args: Union[bytes, Mapping[str, Any], None],
        deposit: Union[int, str, None] = None,
        gas: Union[int, str, None] = None,
    ) -> Any:
        await self.keys.ensure_keys()
        secret_key, key_index = self.keys.next_signer()
        action = FunctionCallAction(
            method_name=method_name,
            args=_encode_args(args),
            gas=int(gas) if gas is not None else DEFAULT_FUNCTION_CALL_GAS,
            deposit=int(deposit) if deposit is not None else 0,
        )
        logger.debug(f"Calling {method_name} on {contract_id} with key {key_index}.")
        outcome = await self.provider.sign_and_send_transaction(
            self.identity.account_id, secret_key, contract_id, [action]
        )
        failure = operations.failure_message(outcome)
        if failure is not None:
            raise ContractCallError(f"Call to {method_name} failed: {failure}")
        return operations.success_value(outcome)

    @redact_errors
    async def call(
        self,
        method_name: str,
        args: Union[bytes, Mapping[str, Any], None] = None,
        deposit: Union[int, str, None] = None,
        gas: Union[int, str, None] = None,
    ) -> Any:
        """
        Call a change method on the agent contract, signed by the next agent key.

        Args:
            method_name (str): Contract method.
            args (Union[bytes, Mapping[str, Any], None]): JSON arguments or raw bytes.
            deposit (Union[int, str, None]): Attached deposit in yoctoNEAR.
            gas (Union[int, str, None]): Attached gas (default 30 TGas).

        Returns:
            Any: The decoded return value of the method.
        """
        contract_id = self._require_contract("call functions")
        return await self._call(contract_id, method_name, args, deposit=deposit, gas=gas)

    @redact_errors
    async def request_signature(self, path: str, payload: str, key_type: str = "Ecdsa") -> Any:
        """Ask the agent contract for a chain signature over ``payload``."""
        contract_id = self._require_contract("requesting signatures")
        return await self._call(
            contract_id, "request_signature", {"path": path, "payload": payload, "key_type": key_type}
        )

    async def _get_attestation(self) -> Attestation:
        return await attestation_assembly.get_attestation(
            self.capability,
            self.identity.account_id,
            self.identity.derived_with_hardware,
            client=self._http_client,
        )

    @redact_errors
    async def get_attestation(self) -> Attestation:
        return await self._get_attestation()

    @redact_errors
    async def register(self) -> Any:
        """
        Register the agent in the agent contract.

        A fresh attestation is fetched on every call; repeated registrations are left for
        the contract to accept or reject.
        """
        contract_id = self._require_contract("registering the agent")
        evidence = await self._get_attestation()
        result = await self._call(
            contract_id, "register_agent", {"attestation": evidence.model_dump()}, gas=REGISTER_GAS
        )
        logger.info(f"register_agent returned {result!r}.")
        return result

    @redact_errors
    async def fund(self, amount: float) -> None:
        """Transfer ``amount`` NEAR from the sponsor account to the agent."""
        sponsor = self.config.sponsor
        if sponsor is None:
            raise ConfigurationError("sponsor is required for funding the agent account")
        await operations.fund_account(
            self.provider,
            self.identity.account_id,
            sponsor.account_id,
            sponsor.private_key.get_secret_value(),
            amount,
        )

    def get_private_keys(self, acknowledge_risk: bool = False) -> List[str]:
        """
        Export the agent's secret keys.

        Raises:
            SecretExportError: Unless ``acknowledge_risk`` is True.
        """
        if not acknowledge_risk:
            raise SecretExportError(f"{EXPORT_WARNING} {EXPORT_ACKNOWLEDGE}")
        logger.warning(EXPORT_WARNING)
        return list(self.identity.private_keys)


@redact_errors
async def create_client(
    config: Union[ShadeConfig, Mapping[str, Any], None] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ShadeClient:
    """
    Create a Shade Agent client.

    Validates the configuration, checks that the RPC provider serves the configured
    network, detects the TEE and derives the agent's primary key.

    Args:
        config (Union[ShadeConfig, Mapping[str, Any], None]): Client configuration.
        http_client (Optional[httpx.AsyncClient]): HTTP client shared by the default RPC
            provider and the collateral requests.

    Raises:
        ConfigurationError: If the configuration is invalid or the network does not match.
        AgentCreationError: If the identity cannot be derived.
    """
    cfg = validate_config(config)

    owns_provider = cfg.rpc is None
    provider: LedgerProvider = cfg.rpc or JsonRpcProvider.for_network(cfg.network_id, client=http_client)
    cfg = cfg.model_copy(update={"rpc": provider})

    try:
        rpc_network_id = await provider.get_network_id()
        if rpc_network_id != cfg.network_id:
            raise ConfigurationError(
                f'Network ID mismatch: network_id is "{cfg.network_id}" but RPC provider is connected to "{rpc_network_id}"'
            )
        capability = await get_hardware_capability()
    except Exception:
        if owns_provider and isinstance(provider, JsonRpcProvider):
            await provider.aclose()
        raise

    try:
        identity = await generate_identity(capability, cfg.derivation_path)
    except Exception:
        if capability is not None:
            await capability.aclose()
        if owns_provider and isinstance(provider, JsonRpcProvider):
            await provider.aclose()
        raise

    logger.info(f"Shade agent created: {identity.account_id} (TEE: {capability is not None}).")
    return ShadeClient(_CREATE_TOKEN, cfg, provider, capability, identity, http_client, owns_provider)


class ShadeClientSync:
    """
    Sync Facade for ShadeClient.

    Runs the async client on a blocking portal for synchronous callers.
    """

    def __init__(
        self,
        config: Union[ShadeConfig, Mapping[str, Any], None] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._http_client = http_client
        self._async: Optional[ShadeClient] = None
        self._portal: Optional[anyio.from_thread.BlockingPortal] = None
        self._portal_cm: Any = None

    def __enter__(self) -> "ShadeClientSync":
        self._portal_cm = anyio.from_thread.start_blocking_portal()
        self._portal = self._portal_cm.__enter__()
        try:
            self._async = self._portal.call(functools.partial(create_client, self._config, http_client=self._http_client))
        except BaseException:
            self._portal_cm.__exit__(None, None, None)
            self._portal = None
            self._portal_cm = None
            raise
        return self

    def __exit__(self, *args: Any) -> None:
        if self._portal:
            try:
                if self._async is not None:
                    self._portal.call(self._async.aclose)
            finally:
                if self._portal_cm:
                    self._portal_cm.__exit__(None, None, None)
                self._portal = None
                self._portal_cm = None
                self._async = None

    def _run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        if not self._portal or self._async is None:
            raise RuntimeError("Client used outside of context manager")
        return self._portal.call(functools.partial(func, *args, **kwargs))

    def account_id(self) -> str:
        if self._async is None:
            raise RuntimeError("Client used outside of context manager")
        return self._async.account_id()

    def balance(self) -> float:
        return self._run(self._client.balance)

    def registration_status(self) -> AgentStatus:
        return self._run(self._client.registration_status)

    def is_whitelisted(self) -> Optional[bool]:
        return self._run(self._client.is_whitelisted)

    def register(self) -> Any:
        return self._run(self._client.register)

    def call(self, method_name: str, args: Any = None, deposit: Any = None, gas: Any = None) -> Any:
        return self._run(self._client.call, method_name, args, deposit=deposit, gas=gas)

    def request_signature(self, path: str, payload: str, key_type: str = "Ecdsa") -> Any:
        return self._run(self._client.request_signature, path, payload, key_type)

    def view(self, method_name: str, args: Optional[Dict[str, Any]] = None, block_query: Any = None) -> Any:
        return self._run(self._client.view, method_name, args, block_query)

    def get_attestation(self) -> Attestation:
        return self._run(self._client.get_attestation)

    def fund(self, amount: float) -> None:
        self._run(self._client.fund, amount)

    def get_private_keys(self, acknowledge_risk: bool = False) -> List[str]:
        return self._client.get_private_keys(acknowledge_risk)

    @property
    def _client(self) -> ShadeClient:
        if self._async is None:
            raise RuntimeError("Client used outside of context manager")
        return self._async
