"""Tests for wallet_chain_rpc.add_chain.handler: the full request pipeline."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from wallet_chain_rpc.add_chain import (
    AddEthereumChainHandler,
    ApprovalPolicy,
    HandlerState,
    NetworkDecision,
    PermissionDecision,
)
from wallet_chain_rpc.chains import CHAIN_IDS
from wallet_chain_rpc.errors import InvalidParamsError, UserRejectedRequestError
from wallet_chain_rpc.middleware import dispatch
from wallet_chain_rpc.models import (
    ApprovalFlowHandle,
    NetworkConfiguration,
    RpcEndpoint,
    RpcEndpointType,
)

from ._helpers import (
    NEW_CLIENT_ID,
    NON_INFURA_CHAIN_ID,
    chain_params,
    custom_configuration,
    hook_mapping,
    mainnet_configuration,
    mutating_calls,
    optimism_configuration,
    with_client_ids,
)


def _request(params, origin: str = "example.com") -> dict:
    return {
        "id": 7,
        "jsonrpc": "2.0",
        "method": "wallet_addEthereumChain",
        "params": params,
        "origin": origin,
    }


class TestNewNetwork:
    """Chains the wallet has never stored."""

    @pytest.mark.asyncio
    async def test_creates_network_grants_permission_and_switches(self, make_hooks):
        hooks = make_hooks(
            permitted=[],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.MAINNET),
        )
        # The stored form drops the client id the store assigns.
        requested = custom_configuration()
        requested.rpc_endpoints[0].network_client_id = None

        outcome = await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(requested)
        )

        hooks.add_network.assert_awaited_once_with(requested)
        hooks.grant_permitted_chains_permission_incremental.assert_awaited_once_with(
            [NON_INFURA_CHAIN_ID]
        )
        hooks.request_permitted_chains_permission.assert_not_awaited()
        hooks.set_active_network.assert_awaited_once_with(NEW_CLIENT_ID)
        assert outcome.state is HandlerState.SUCCESS
        assert outcome.network_decision is NetworkDecision.CREATE
        assert outcome.permission_decision is PermissionDecision.INCREMENT

    @pytest.mark.asyncio
    async def test_scenario_a_result_is_null(self, make_hooks):
        hooks = make_hooks(
            permitted=None,
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.SEPOLIA),
        )
        params = [
            {
                "chainId": "0x1",
                "rpcUrls": ["https://mainnet.example/v3/"],
                "nativeCurrency": {"symbol": "ETH", "decimals": 18},
                "blockExplorerUrls": ["https://etherscan.io"],
                "chainName": "Ethereum Mainnet",
            }
        ]

        response = await dispatch(_request(params), hook_mapping(hooks))

        assert response == {"id": 7, "jsonrpc": "2.0", "result": None}
        assert hooks.add_network.await_count == 1
        hooks.request_permitted_chains_permission.assert_awaited_once_with(["0x1"])
        hooks.grant_permitted_chains_permission_incremental.assert_not_awaited()
        assert hooks.set_active_network.await_count == 1

    @pytest.mark.asyncio
    async def test_exactly_one_create_permission_and_switch(self, make_hooks):
        for permitted in (None, [], [CHAIN_IDS.MAINNET]):
            hooks = make_hooks(permitted=permitted)
            await AddEthereumChainHandler(hooks).handle(
                "example.com", chain_params(optimism_configuration())
            )
            permission_calls = (
                hooks.request_permitted_chains_permission.await_count
                + hooks.grant_permitted_chains_permission_incremental.await_count
            )
            assert hooks.add_network.await_count == 1
            assert permission_calls == 1
            assert hooks.set_active_network.await_count == 1

    @pytest.mark.asyncio
    async def test_new_network_is_confirmed_by_default(self, make_hooks):
        hooks = make_hooks(permitted=[CHAIN_IDS.OPTIMISM])
        await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(optimism_configuration())
        )
        assert hooks.request_user_approval.await_count == 1

    @pytest.mark.asyncio
    async def test_creation_prompt_can_be_disabled_when_already_permitted(self, make_hooks):
        hooks = make_hooks(permitted=[CHAIN_IDS.OPTIMISM])
        policy = ApprovalPolicy(confirm_network_creation=False)
        await AddEthereumChainHandler(hooks, policy).handle(
            "example.com", chain_params(optimism_configuration())
        )
        hooks.request_user_approval.assert_not_awaited()
        hooks.add_network.assert_awaited_once()
        hooks.set_active_network.assert_awaited_once_with(NEW_CLIENT_ID)

    @pytest.mark.asyncio
    async def test_approval_request_describes_the_chain(self, make_hooks):
        hooks = make_hooks()
        await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(optimism_configuration())
        )
        (approval,), _ = hooks.request_user_approval.await_args
        assert approval.origin == "example.com"
        assert approval.type.value == "wallet_addEthereumChain"
        assert approval.request_data.chain_id == CHAIN_IDS.OPTIMISM
        assert approval.request_data.rpc_url == "https://optimism.llamarpc.com"
        assert approval.request_data.ticker == "ETH"
        assert approval.request_data.rpc_prefs.block_explorer_url == "https://optimistic.etherscan.io"
        assert approval.request_data.existing_network is False

    @pytest.mark.asyncio
    async def test_rejected_confirmation_leaves_store_untouched(self, make_hooks):
        rejection = UserRejectedRequestError()
        hooks = make_hooks(request_user_approval=AsyncMock(side_effect=rejection))

        with pytest.raises(UserRejectedRequestError) as exc_info:
            await AddEthereumChainHandler(hooks).handle(
                "example.com", chain_params(optimism_configuration())
            )

        assert exc_info.value is rejection
        hooks.add_network.assert_not_awaited()
        hooks.grant_permitted_chains_permission_incremental.assert_not_awaited()
        hooks.set_active_network.assert_not_awaited()
        hooks.end_approval_flow.assert_called_once_with(ApprovalFlowHandle(id="approvalFlowId"))

    @pytest.mark.asyncio
    async def test_integer_client_id_from_store_is_activated(self, make_hooks):
        def add_network(config):
            stored = config.to_wire()
            stored["rpcEndpoints"][0]["networkClientId"] = 123
            return stored

        hooks = make_hooks(add_network=AsyncMock(side_effect=add_network))

        outcome = await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(optimism_configuration())
        )

        assert outcome.state is HandlerState.SUCCESS
        hooks.set_active_network.assert_awaited_once_with(123)
        assert outcome.network_client_id == 123


class TestExistingNetwork:
    """Chains already present in the network store."""

    @pytest.mark.asyncio
    async def test_changed_rpc_url_updates_and_switches_without_permission_request(self, make_hooks):
        hooks = make_hooks(
            permitted=[CHAIN_IDS.MAINNET],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.SEPOLIA),
            get_network_configuration_by_chain_id=MagicMock(return_value=mainnet_configuration()),
        )
        params = chain_params(mainnet_configuration(), rpcUrls=["https://eth.llamarpc.com"])

        outcome = await AddEthereumChainHandler(hooks).handle("example.com", params)

        expected = mainnet_configuration()
        expected.rpc_endpoints.append(
            RpcEndpoint(
                url="https://eth.llamarpc.com",
                name="Ethereum Mainnet",
                type=RpcEndpointType.CUSTOM,
            )
        )
        expected.default_rpc_endpoint_index = 1
        hooks.update_network.assert_awaited_once_with(CHAIN_IDS.MAINNET, expected)
        assert hooks.request_user_approval.await_count == 1
        hooks.request_permitted_chains_permission.assert_not_awaited()
        hooks.grant_permitted_chains_permission_incremental.assert_not_awaited()
        hooks.set_active_network.assert_awaited_once_with(NEW_CLIENT_ID)
        assert outcome.network_decision is NetworkDecision.UPDATE

    @pytest.mark.asyncio
    async def test_changed_rpc_url_requests_missing_permission(self, make_hooks):
        hooks = make_hooks(
            permitted=[],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.MAINNET),
            get_network_configuration_by_chain_id=MagicMock(return_value=custom_configuration()),
        )
        params = chain_params(custom_configuration(), rpcUrls=["https://new-custom.network"])

        await AddEthereumChainHandler(hooks).handle("example.com", params)

        assert hooks.update_network.await_count == 1
        hooks.grant_permitted_chains_permission_incremental.assert_awaited_once_with(
            [NON_INFURA_CHAIN_ID]
        )
        assert hooks.request_user_approval.await_count == 1
        assert hooks.set_active_network.await_count == 1

    @pytest.mark.asyncio
    async def test_update_on_current_chain_moves_the_selected_endpoint(self, make_hooks):
        hooks = make_hooks(
            permitted=[NON_INFURA_CHAIN_ID],
            get_network_configuration_by_chain_id=MagicMock(return_value=custom_configuration()),
        )
        params = chain_params(custom_configuration(), rpcUrls=["https://new-custom.network"])

        await AddEthereumChainHandler(hooks).handle("example.com", params)

        _, kwargs = hooks.update_network.await_args
        assert kwargs == {"replacement_selected_rpc_endpoint_index": 1}
        hooks.set_active_network.assert_awaited_once_with(NEW_CLIENT_ID)

    @pytest.mark.asyncio
    async def test_two_argument_update_hook_on_current_chain(self, make_hooks):
        received = []

        async def update_network(chain_id, config):
            received.append(chain_id)
            return with_client_ids(config)

        hooks = make_hooks(
            permitted=[NON_INFURA_CHAIN_ID],
            get_network_configuration_by_chain_id=MagicMock(return_value=custom_configuration()),
            update_network=update_network,
        )
        params = chain_params(custom_configuration(), rpcUrls=["https://other.example"])

        outcome = await AddEthereumChainHandler(hooks).handle("example.com", params)

        assert outcome.state is HandlerState.SUCCESS
        assert outcome.network_decision is NetworkDecision.UPDATE
        assert received == [NON_INFURA_CHAIN_ID]
        hooks.set_active_network.assert_awaited_once_with(NEW_CLIENT_ID)

    @pytest.mark.asyncio
    async def test_known_secondary_url_becomes_default(self, make_hooks):
        existing = custom_configuration()
        existing.rpc_endpoints.append(
            RpcEndpoint(url="https://backup.custom.network", network_client_id="backup-client")
        )
        hooks = make_hooks(
            permitted=[NON_INFURA_CHAIN_ID],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.MAINNET),
            get_network_configuration_by_chain_id=MagicMock(return_value=existing),
        )
        params = chain_params(existing, rpcUrls=["https://backup.custom.network"])

        await AddEthereumChainHandler(hooks).handle("example.com", params)

        (_, updated), _ = hooks.update_network.await_args
        assert len(updated.rpc_endpoints) == 2
        assert updated.default_rpc_endpoint_index == 1
        hooks.set_active_network.assert_awaited_once_with("backup-client")

    @pytest.mark.asyncio
    async def test_scenario_b_switches_to_existing_client(self, make_hooks):
        hooks = make_hooks(
            permitted=[CHAIN_IDS.OPTIMISM, CHAIN_IDS.MAINNET],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.MAINNET),
            get_network_configuration_by_chain_id=MagicMock(return_value=optimism_configuration()),
        )

        outcome = await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(optimism_configuration())
        )

        hooks.request_permitted_chains_permission.assert_not_awaited()
        hooks.grant_permitted_chains_permission_incremental.assert_not_awaited()
        hooks.request_user_approval.assert_not_awaited()
        hooks.add_network.assert_not_awaited()
        hooks.update_network.assert_not_awaited()
        hooks.set_active_network.assert_awaited_once_with("optimism-network-client-id")
        assert outcome.network_decision is NetworkDecision.SWITCH_ONLY
        assert outcome.permission_decision is PermissionDecision.NONE
        assert outcome.confirmed is False

    @pytest.mark.asyncio
    async def test_pure_switch_prompt_follows_policy(self, make_hooks):
        hooks = make_hooks(
            permitted=[CHAIN_IDS.OPTIMISM],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.MAINNET),
            get_network_configuration_by_chain_id=MagicMock(return_value=optimism_configuration()),
        )
        policy = ApprovalPolicy(confirm_pure_switch=True)

        outcome = await AddEthereumChainHandler(hooks, policy).handle(
            "example.com", chain_params(optimism_configuration())
        )

        assert hooks.request_user_approval.await_count == 1
        assert outcome.confirmed is True

    @pytest.mark.asyncio
    async def test_switch_to_unpermitted_known_network_is_confirmed(self, make_hooks):
        hooks = make_hooks(
            permitted=[CHAIN_IDS.MAINNET],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.MAINNET),
            get_network_configuration_by_chain_id=MagicMock(return_value=optimism_configuration()),
        )

        await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(optimism_configuration())
        )

        assert hooks.request_user_approval.await_count == 1
        hooks.grant_permitted_chains_permission_incremental.assert_awaited_once_with(
            [CHAIN_IDS.OPTIMISM]
        )
        hooks.set_active_network.assert_awaited_once_with("optimism-network-client-id")

    @pytest.mark.asyncio
    async def test_selection_token_overrides_default_client(self, make_hooks):
        hooks = make_hooks(request_user_approval=AsyncMock(return_value="picked-client"))
        outcome = await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(optimism_configuration())
        )
        hooks.set_active_network.assert_awaited_once_with("picked-client")
        assert outcome.network_client_id == "picked-client"

    @pytest.mark.asyncio
    async def test_currency_mismatch_is_rejected(self, make_hooks):
        hooks = make_hooks(
            permitted=[CHAIN_IDS.MAINNET],
            get_network_configuration_by_chain_id=MagicMock(return_value=mainnet_configuration()),
        )
        params = chain_params(
            mainnet_configuration(), nativeCurrency={"symbol": "WRONG", "decimals": 18}
        )

        with pytest.raises(InvalidParamsError) as exc_info:
            await AddEthereumChainHandler(hooks).handle("example.com", params)

        assert exc_info.value == InvalidParamsError(
            "nativeCurrency.symbol does not match currency symbol for a network the user "
            "already has added with the same chainId. Received:\nWRONG"
        )
        assert all(count == 0 for count in mutating_calls(hooks).values())


class TestAlreadyOnNetwork:
    """Requests for the chain and RPC URL the origin is already using."""

    @pytest.mark.asyncio
    async def test_scenario_d_returns_null_without_mutations(self, make_hooks):
        hooks = make_hooks(
            get_current_chain_id_for_domain=MagicMock(return_value=NON_INFURA_CHAIN_ID),
            get_network_configuration_by_chain_id=MagicMock(return_value=custom_configuration()),
        )
        params = chain_params(custom_configuration())

        response = await dispatch(_request(params), hook_mapping(hooks))

        assert response["result"] is None
        assert "error" not in response
        assert all(count == 0 for count in mutating_calls(hooks).values())
        hooks.end_approval_flow.assert_not_called()

    @pytest.mark.asyncio
    async def test_repeated_requests_stay_idempotent(self, make_hooks):
        hooks = make_hooks(
            get_network_configuration_by_chain_id=MagicMock(return_value=custom_configuration()),
        )
        handler = AddEthereumChainHandler(hooks)
        params = chain_params(custom_configuration())

        first = await handler.handle("example.com", params)
        second = await handler.handle("example.com", params)

        for outcome in (first, second):
            assert outcome.states == [
                HandlerState.VALIDATING,
                HandlerState.RESOLVING,
                HandlerState.NOOP,
            ]
        assert all(count == 0 for count in mutating_calls(hooks).values())


class TestFailures:
    """Errors stop the pipeline, surface unchanged, and close the approval flow."""

    @pytest.mark.asyncio
    async def test_unexpected_key_is_reported(self, make_hooks):
        hooks = make_hooks()
        params = chain_params(custom_configuration(), unexpected="parameter")

        response = await dispatch(_request(params), hook_mapping(hooks))

        assert response["error"] == {
            "code": -32602,
            "message": "Received unexpected keys on object parameter. Unsupported keys:\nunexpected",
        }
        assert "result" not in response
        hooks.get_current_chain_id_for_domain.assert_not_called()
        hooks.start_approval_flow.assert_not_called()

    @pytest.mark.asyncio
    async def test_permission_rejection_skips_switch(self, make_hooks):
        error = RuntimeError("Permission request failed")
        hooks = make_hooks(
            permitted=[],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.SEPOLIA),
            grant_permitted_chains_permission_incremental=AsyncMock(side_effect=error),
        )
        handler = AddEthereumChainHandler(hooks)

        with pytest.raises(RuntimeError) as exc_info:
            await handler.handle("example.com", chain_params(mainnet_configuration()))

        assert exc_info.value is error
        assert hooks.grant_permitted_chains_permission_incremental.await_count == 1
        # The configuration written before the grant stays in place.
        assert hooks.add_network.await_count == 1
        hooks.set_active_network.assert_not_awaited()
        hooks.end_approval_flow.assert_called_once()
        assert handler.last_outcome.state is HandlerState.ERROR
        assert handler.last_outcome.states[-2] is HandlerState.APPROVING

    @pytest.mark.asyncio
    async def test_permission_rejection_is_returned_as_rpc_error(self, make_hooks):
        hooks = make_hooks(
            grant_permitted_chains_permission_incremental=AsyncMock(
                side_effect=UserRejectedRequestError()
            ),
        )

        response = await dispatch(
            _request(chain_params(optimism_configuration())), hook_mapping(hooks)
        )

        assert response["error"]["code"] == 4001
        hooks.set_active_network.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_switch_failure_still_closes_flow(self, make_hooks):
        error = ValueError("unknown network client")
        hooks = make_hooks(set_active_network=AsyncMock(side_effect=error))

        with pytest.raises(ValueError):
            await AddEthereumChainHandler(hooks).handle(
                "example.com", chain_params(optimism_configuration())
            )

        hooks.end_approval_flow.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancellation_closes_flow(self, make_hooks):
        hooks = make_hooks(set_active_network=AsyncMock(side_effect=asyncio.CancelledError()))

        with pytest.raises(asyncio.CancelledError):
            await AddEthereumChainHandler(hooks).handle(
                "example.com", chain_params(optimism_configuration())
            )

        hooks.end_approval_flow.assert_called_once()

    @pytest.mark.asyncio
    async def test_failing_close_does_not_mask_pipeline_error(self, make_hooks):
        error = RuntimeError("switch failed")
        hooks = make_hooks(
            set_active_network=AsyncMock(side_effect=error),
            end_approval_flow=MagicMock(side_effect=ValueError("flow already ended")),
        )

        with pytest.raises(RuntimeError) as exc_info:
            await AddEthereumChainHandler(hooks).handle(
                "example.com", chain_params(optimism_configuration())
            )

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_store_failure_is_not_retried(self, make_hooks):
        hooks = make_hooks(add_network=AsyncMock(side_effect=ConnectionError("store offline")))

        response = await dispatch(
            _request(chain_params(optimism_configuration())), hook_mapping(hooks)
        )

        assert response["error"]["code"] == -32603
        assert response["error"]["message"] == "store offline"
        assert hooks.add_network.await_count == 1
        hooks.grant_permitted_chains_permission_incremental.assert_not_awaited()
        hooks.end_approval_flow.assert_called_once()

    @pytest.mark.asyncio
    async def test_dict_configuration_from_store_is_accepted(self, make_hooks):
        stored = optimism_configuration().to_wire()
        hooks = make_hooks(
            permitted=[CHAIN_IDS.OPTIMISM],
            get_current_chain_id_for_domain=MagicMock(return_value=CHAIN_IDS.MAINNET),
            get_network_configuration_by_chain_id=MagicMock(return_value=stored),
        )

        outcome = await AddEthereumChainHandler(hooks).handle(
            "example.com", chain_params(NetworkConfiguration.model_validate(stored))
        )

        hooks.set_active_network.assert_awaited_once_with("optimism-network-client-id")
        assert outcome.network_decision is NetworkDecision.SWITCH_ONLY
