"""User-facing cross-chain flows: bridge, message, interchain account call."""

from xchain_flows.flows.base import NOTICE_NO_MESSAGE_ID, FlowController, FlowSession, FlowView
from xchain_flows.flows.bridge import BridgeFlowController, BridgeRequest
from xchain_flows.flows.ica import IcaCall, IcaFlowController, IcaRequest
from xchain_flows.flows.message import MessageFlowController, MessageRequest
from xchain_flows.flows.runner import FlowOutcome, Submitter, execute_flow

__all__ = [
    "NOTICE_NO_MESSAGE_ID",
    "BridgeFlowController",
    "BridgeRequest",
    "FlowController",
    "FlowOutcome",
    "FlowSession",
    "FlowView",
    "IcaCall",
    "IcaFlowController",
    "IcaRequest",
    "MessageFlowController",
    "MessageRequest",
    "Submitter",
    "execute_flow",
]
