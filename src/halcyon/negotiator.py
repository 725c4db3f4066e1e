"""
Long-lived token negotiation over the hub's WebSocket API.

A short-lived OAuth access token is upgraded into a long-lived token by
authenticating a WebSocket connection and issuing one
``auth/long_lived_access_token`` command::

    hub    -> {"type": "auth_required"}
    client -> {"type": "auth", "access_token": "..."}
    hub    -> {"type": "auth_ok"}              (or auth_invalid)
    client -> {"id": 11, "type": "auth/long_lived_access_token",
               "client_name": "Halcyon", "lifespan": 365}
    hub    -> {"id": 11, "type": "result", "success": true, "result": "<token>"}

``NegotiationSession`` holds the protocol state machine and does no I/O.
``LongLivedTokenNegotiator`` drives a session over a real connection.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Union

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from .exceptions import AuthRejectedError, NegotiationTimeoutError, NetworkError, ProtocolError
from .settings import DEFAULT_COMMAND_ID, DEFAULT_TOKEN_LIFESPAN_DAYS

logger = logging.getLogger(__name__)

TYPE_AUTH_REQUIRED = "auth_required"
TYPE_AUTH = "auth"
TYPE_AUTH_OK = "auth_ok"
TYPE_AUTH_INVALID = "auth_invalid"
TYPE_RESULT = "result"
TYPE_LONG_LIVED_TOKEN = "auth/long_lived_access_token"


@dataclass(frozen=True)
class AuthRequired:
    ha_version: Optional[str] = None


@dataclass(frozen=True)
class AuthPayload:
    access_token: str

    def __repr__(self) -> str:
        return "AuthPayload(access_token=<redacted>)"


@dataclass(frozen=True)
class AuthOk:
    ha_version: Optional[str] = None


@dataclass(frozen=True)
class AuthInvalid:
    message: str = ""


@dataclass(frozen=True)
class IssueTokenRequest:
    id: int
    client_name: str
    lifespan_days: int


@dataclass(frozen=True)
class IssueTokenResult:
    """
    Reply to an IssueTokenRequest.

    Attributes:
        id: Command id this result answers
        success: Whether the hub issued a token
        token: Issued long-lived token (when success)
        error: Hub-supplied error message (when not success)
    """

    id: int
    success: bool
    token: Optional[str] = None
    error: Optional[str] = None

    def __repr__(self) -> str:
        token = "<redacted>" if self.token else None
        return (
            f"IssueTokenResult(id={self.id}, success={self.success}, "
            f"token={token}, error={self.error!r})"
        )


NegotiationMessage = Union[
    AuthRequired, AuthPayload, AuthOk, AuthInvalid, IssueTokenRequest, IssueTokenResult
]


def parse_message(raw: Union[str, bytes]) -> NegotiationMessage:
    """
    Decode one incoming WebSocket frame.

    Args:
        raw: Frame payload (JSON object)

    Returns:
        The matching message variant

    Raises:
        ProtocolError: If the frame is not JSON, has no type, or has an
            unrecognized type
    """
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.error(f"Unparseable message from hub: {raw!r}")
        raise ProtocolError(f"Unparseable message from hub: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        logger.error(f"Message from hub has no type: {raw!r}")
        raise ProtocolError(f"Message from hub has no type: {raw!r}")

    message_type = data["type"]
    if message_type == TYPE_AUTH_REQUIRED:
        return AuthRequired(ha_version=data.get("ha_version"))
    if message_type == TYPE_AUTH_OK:
        return AuthOk(ha_version=data.get("ha_version"))
    if message_type == TYPE_AUTH_INVALID:
        return AuthInvalid(message=str(data.get("message") or ""))
    if message_type == TYPE_RESULT:
        return _parse_result(data)

    logger.error(f"Unexpected message type from hub: {message_type!r}")
    raise ProtocolError(f"Unexpected message type from hub: {message_type!r}")


def _parse_result(data: dict) -> IssueTokenResult:
    message_id = data.get("id")
    success = data.get("success")
    if not isinstance(message_id, int) or isinstance(message_id, bool):
        raise ProtocolError(f"Result message has no integer id: {data!r}")
    if not isinstance(success, bool):
        raise ProtocolError(f"Result message has no success flag: {data!r}")

    token = data.get("result")
    error = data.get("error")
    if isinstance(error, dict):
        error = error.get("message") or error.get("code")
    return IssueTokenResult(
        id=message_id,
        success=success,
        token=token if isinstance(token, str) else None,
        error=str(error) if error else None,
    )


def encode_message(message: NegotiationMessage) -> str:
    """Encode an outgoing message as a JSON text frame."""
    payload: dict[str, Any]
    if isinstance(message, AuthPayload):
        payload = {"type": TYPE_AUTH, "access_token": message.access_token}
    elif isinstance(message, IssueTokenRequest):
        payload = {
            "id": message.id,
            "type": TYPE_LONG_LIVED_TOKEN,
            "client_name": message.client_name,
            "lifespan": message.lifespan_days,
        }
    else:
        raise TypeError(f"{type(message).__name__} is not a client message")
    return json.dumps(payload)


class NegotiationState(Enum):
    CONNECTING = "connecting"
    AWAITING_AUTH_REQUIRED = "awaiting_auth_required"
    SENDING_AUTH = "sending_auth"
    AWAITING_AUTH_RESULT = "awaiting_auth_result"
    SENDING_ISSUE_REQUEST = "sending_issue_request"
    AWAITING_RESULT = "awaiting_result"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = (NegotiationState.SUCCEEDED, NegotiationState.FAILED)


class NegotiationSession:
    """
    Protocol state machine for one long-lived token negotiation.

    Feed incoming messages to ``receive``; it returns the messages to send
    back. Once ``done`` is True, ``token`` holds the issued token. Any
    failure moves the session to FAILED and raises.
    """

    def __init__(
        self,
        access_token: str,
        client_name: str = "Halcyon",
        lifespan_days: int = DEFAULT_TOKEN_LIFESPAN_DAYS,
        command_id: int = DEFAULT_COMMAND_ID,
    ):
        self.access_token = access_token
        self.client_name = client_name
        self.lifespan_days = lifespan_days
        self.command_id = command_id
        self.state = NegotiationState.CONNECTING
        self.token: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def connected(self) -> None:
        self._expect(NegotiationState.CONNECTING, "connection established")
        self.state = NegotiationState.AWAITING_AUTH_REQUIRED

    def receive(self, message: NegotiationMessage) -> List[NegotiationMessage]:
        """
        Advance the state machine with one incoming message.

        Args:
            message: Parsed message from the hub

        Returns:
            Messages to send to the hub (possibly empty)

        Raises:
            AuthRejectedError: If the hub rejects the access token
            ProtocolError: If the message is unexpected in the current state,
                the result id does not match, or the hub refuses to issue a token
        """
        logger.debug(f"Negotiation state {self.state.value}: received {message!r}")

        if isinstance(message, AuthRequired):
            self._expect(NegotiationState.AWAITING_AUTH_REQUIRED, message)
            self.state = NegotiationState.SENDING_AUTH
            outgoing: NegotiationMessage = AuthPayload(self.access_token)
            self.state = NegotiationState.AWAITING_AUTH_RESULT
            return [outgoing]

        if isinstance(message, AuthInvalid):
            self._expect(NegotiationState.AWAITING_AUTH_RESULT, message)
            self.state = NegotiationState.FAILED
            logger.error(f"Hub rejected WebSocket authorization: {message.message}")
            raise AuthRejectedError(message.message)

        if isinstance(message, AuthOk):
            self._expect(NegotiationState.AWAITING_AUTH_RESULT, message)
            logger.info("WebSocket authorized, requesting long-lived token")
            self.state = NegotiationState.SENDING_ISSUE_REQUEST
            outgoing = IssueTokenRequest(
                id=self.command_id,
                client_name=self.client_name,
                lifespan_days=self.lifespan_days,
            )
            self.state = NegotiationState.AWAITING_RESULT
            return [outgoing]

        if isinstance(message, IssueTokenResult):
            self._expect(NegotiationState.AWAITING_RESULT, message)
            return self._handle_result(message)

        self.state = NegotiationState.FAILED
        raise ProtocolError(f"Unexpected message from hub: {message!r}")

    def _handle_result(self, message: IssueTokenResult) -> List[NegotiationMessage]:
        if message.id != self.command_id:
            self.state = NegotiationState.FAILED
            logger.error(f"Result id {message.id} does not match request id {self.command_id}")
            raise ProtocolError(
                f"Hub answered command {message.id}, expected {self.command_id}"
            )

        if not message.success:
            self.state = NegotiationState.FAILED
            logger.error(f"Hub refused to issue long-lived token: {message.error}")
            raise ProtocolError(
                f"Hub refused to issue a long-lived token: {message.error or 'no reason given'} "
                f"(perhaps one has already been created for {self.client_name!r}?)"
            )

        if not message.token:
            self.state = NegotiationState.FAILED
            raise ProtocolError("Hub reported success but returned no token")

        self.token = message.token
        self.state = NegotiationState.SUCCEEDED
        logger.info("Long-lived token issued")
        return []

    def _expect(self, expected: NegotiationState, event: Any) -> None:
        if self.state != expected:
            current = self.state
            self.state = NegotiationState.FAILED
            logger.error(f"Unexpected {event!r} in state {current.value}")
            raise ProtocolError(
                f"Unexpected {event!r} from hub while {current.value.replace('_', ' ')}"
            )


class LongLivedTokenNegotiator:
    """
    Upgrades a short-lived access token into a long-lived token.

    Example:
        negotiator = LongLivedTokenNegotiator(message_timeout=30)
        token = negotiator.negotiate("hub.local:8123", access_token)
    """

    def __init__(
        self,
        scheme: str = "ws",
        client_name: str = "Halcyon",
        lifespan_days: int = DEFAULT_TOKEN_LIFESPAN_DAYS,
        command_id: int = DEFAULT_COMMAND_ID,
        message_timeout: Optional[float] = None,
        open_timeout: Optional[float] = 10,
        connect: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize negotiator.

        Args:
            scheme: "ws" or "wss"
            client_name: Client name attached to the issued token
            lifespan_days: Requested token lifespan
            command_id: Fixed id of the issue-token command
            message_timeout: Seconds to wait for each message, None to wait forever
            open_timeout: Seconds allowed for the opening handshake
            connect: Connection factory (defaults to websockets' sync client)
        """
        self.scheme = scheme
        self.client_name = client_name
        self.lifespan_days = lifespan_days
        self.command_id = command_id
        self.message_timeout = message_timeout
        self.open_timeout = open_timeout
        self._connect = connect or ws_connect

    def websocket_url(self, hub_host: str) -> str:
        return f"{self.scheme}://{hub_host}/api/websocket"

    def negotiate(self, hub_host: str, access_token: str) -> str:
        """
        Run the negotiation and return the issued long-lived token.

        Args:
            hub_host: Hub address (host[:port])
            access_token: Short-lived OAuth access token

        Returns:
            Long-lived token

        Raises:
            NetworkError: If the connection cannot be opened
            AuthRejectedError: If the hub rejects the access token
            NegotiationTimeoutError: If the hub goes silent
            ProtocolError: On any unexpected, malformed or failed message
        """
        url = self.websocket_url(hub_host)
        session = NegotiationSession(
            access_token,
            client_name=self.client_name,
            lifespan_days=self.lifespan_days,
            command_id=self.command_id,
        )

        logger.info(f"Connecting to {url}")
        try:
            connection = self._connect(url, open_timeout=self.open_timeout)
        except (OSError, WebSocketException) as e:
            logger.error(f"Could not connect to {url}: {e}")
            raise NetworkError(f"Could not connect to hub WebSocket {url}: {e}") from e

        with connection:
            session.connected()
            while not session.done:
                raw = self._recv(connection, session)
                try:
                    message = parse_message(raw)
                except ProtocolError:
                    session.state = NegotiationState.FAILED
                    raise
                for outgoing in session.receive(message):
                    logger.debug(f"Sending {outgoing!r}")
                    self._send(connection, session, encode_message(outgoing))

        return session.token

    def _recv(self, connection: Any, session: NegotiationSession) -> Union[str, bytes]:
        try:
            return connection.recv(timeout=self.message_timeout)
        except TimeoutError as e:
            session.state = NegotiationState.FAILED
            logger.error(f"Timed out after {self.message_timeout}s waiting for hub")
            raise NegotiationTimeoutError(
                f"Hub sent nothing for {self.message_timeout} seconds during token negotiation"
            ) from e
        except ConnectionClosed as e:
            session.state = NegotiationState.FAILED
            logger.error(f"Hub closed the WebSocket connection: {e}")
            raise ProtocolError(f"Hub closed the connection during token negotiation: {e}") from e
        except (OSError, WebSocketException) as e:
            session.state = NegotiationState.FAILED
            raise NetworkError(f"WebSocket failure during token negotiation: {e}") from e

    @staticmethod
    def _send(connection: Any, session: NegotiationSession, frame: str) -> None:
        try:
            connection.send(frame)
        except ConnectionClosed as e:
            session.state = NegotiationState.FAILED
            raise ProtocolError(f"Hub closed the connection during token negotiation: {e}") from e
        except (OSError, WebSocketException) as e:
            session.state = NegotiationState.FAILED
            raise NetworkError(f"WebSocket failure during token negotiation: {e}") from e
