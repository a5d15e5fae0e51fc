from .assembler import ResponseAssembler
from .boundary import TransportBoundary
from .client import ChatReply, EncryptedChatClient, open_envelope, seal_message
from .envelopes import InboundEnvelope, MissingEncryptionError, OutboundEnvelope
from .settings import ProtocolSettings

__all__ = [
    "ChatReply",
    "EncryptedChatClient",
    "InboundEnvelope",
    "MissingEncryptionError",
    "OutboundEnvelope",
    "ProtocolSettings",
    "ResponseAssembler",
    "TransportBoundary",
    "open_envelope",
    "seal_message",
]
