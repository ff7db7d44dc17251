"""WebSocket connection helpers."""

from websockets.asyncio.server import ServerConnection

from roomcast.logger import logger


def is_websocket_closed(websocket: ServerConnection) -> bool:
    """Check if a WebSocket connection is closed.

    A connection counts as closed once the closing handshake has produced a
    close code.

    Args:
        websocket: The WebSocket connection to check

    Returns:
        True if the connection is closed, False otherwise
    """
    return getattr(websocket, "close_code", None) is not None


async def close_websocket_safely(
    websocket: ServerConnection, code: int = 1000, reason: str = ""
) -> None:
    """Close a WebSocket connection, logging instead of raising on failure.

    Args:
        websocket: The WebSocket connection to close
        code: Close code sent to the peer
        reason: Close reason sent to the peer
    """
    try:
        if not is_websocket_closed(websocket):
            await websocket.close(code=code, reason=reason)
    except Exception as e:
        logger.debug(f"Error closing websocket: {e}")

