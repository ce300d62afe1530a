"""
Chat Bridge - chat orchestration over hosted and local LLMs with tool calling.
"""

from .backends import (
    ChatBackend,
    OpenAIBackend,
    GeminiBackend,
    AnthropicBackend,
    LocalBackend,
    create_backend,
)
from .config import LocalServerConfig, ProviderConfig
from .decider import ToolInvocationDecider
from .errors import (
    ChatBridgeError,
    ModelNotFoundError,
    ExecutableNotFoundError,
    StartupTimeoutError,
    NotReadyError,
    BackendError,
    NotInitializedError,
    ToolExecutionError,
    ToolArgumentParseError,
    ToolProviderError,
)
from .events import StreamCallbacks, StreamEvent
from .history import ConversationStore
from .local_server import LocalInferenceSupervisor, ServerState
from .mcp_provider import MCPToolProvider
from .orchestrator import ChatOrchestrator
from .provider import Provider, get_api_key
from .tool_gateway import ToolGateway, ToolProvider
from .types import (
    ChatResult,
    Message,
    ServerResult,
    ToolCallRecord,
    ToolCallStatus,
    ToolResult,
    ToolServerDescriptor,
    ToolSpec,
)

__version__ = "0.1.0"

__all__ = [
    "ChatOrchestrator",
    "ChatBackend",
    "OpenAIBackend",
    "GeminiBackend",
    "AnthropicBackend",
    "LocalBackend",
    "create_backend",
    "LocalInferenceSupervisor",
    "ServerState",
    "LocalServerConfig",
    "ProviderConfig",
    "ToolInvocationDecider",
    "ConversationStore",
    "ToolGateway",
    "ToolProvider",
    "MCPToolProvider",
    "StreamCallbacks",
    "StreamEvent",
    "Provider",
    "get_api_key",
    "ChatResult",
    "Message",
    "ServerResult",
    "ToolCallRecord",
    "ToolCallStatus",
    "ToolResult",
    "ToolServerDescriptor",
    "ToolSpec",
    "ChatBridgeError",
    "ModelNotFoundError",
    "ExecutableNotFoundError",
    "StartupTimeoutError",
    "NotReadyError",
    "BackendError",
    "NotInitializedError",
    "ToolExecutionError",
    "ToolArgumentParseError",
    "ToolProviderError",
]
