"""HTTP client for the tutor backend and the emotional-pulse service."""
from typing import List, Optional, Dict, Any
from tutor_session.config import settings
from tutor_session.models.schemas import (
    Agent,
    CollaborativeSettings,
    Conversation,
    ConversationWithMessages,
    EmotionalPulse,
    InteractionLog,
    PulseHistory,
    SendMessageResponse,
    Session,
    SessionBundle,
    TutorStats,
)
import httpx
import logging

logger = logging.getLogger(__name__)


class TutorAPIError(Exception):
    """Raised when a backend call fails at the transport or HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_auth_error(self) -> bool:
        """Whether the token was rejected."""
        return self.status_code == 401


class TutorAPIClient:
    """API client for tutor sessions, conversations and emotional pulses."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize API client.

        Args:
            base_url: Backend base URL, defaults to the configured one
            token: Bearer token, defaults to the configured one
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        token = token if token is not None else settings.api_token

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.request_timeout,
            transport=transport
        )
        logger.info(f"Using tutor API: {self.base_url}")

    async def __aenter__(self) -> "TutorAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self):
        """Close the underlying HTTP connection pool."""
        await self.client.aclose()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Pull the most useful error text out of a failed response."""
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get("error") or body.get("message")
            if message:
                return str(message)
        return f"Request failed with status {response.status_code}"

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Perform a request and unwrap the ``{"success", "data"}`` envelope.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            params: Query parameters, ``None`` values are dropped
            json: JSON body

        Returns:
            The envelope's ``data`` member, or None for empty responses

        Raises:
            TutorAPIError: On network errors, HTTP errors or ``success: false``
        """
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        try:
            response = await self.client.request(method, path, params=params or None, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = self._error_message(e.response)
            logger.error(f"HTTP error on {method} {path}: {e.response.status_code} {message}")
            raise TutorAPIError(message, e.response.status_code) from e
        except httpx.RequestError as e:
            logger.error(f"Network error on {method} {path}: {e}")
            raise TutorAPIError(f"Network error: {e}") from e

        if response.status_code == 204 or not response.content:
            return None

        try:
            body = response.json()
        except ValueError as e:
            raise TutorAPIError(f"Invalid JSON from {path}", response.status_code) from e

        if isinstance(body, dict) and "success" in body:
            if not body["success"]:
                raise TutorAPIError(
                    body.get("error") or body.get("message") or "Request failed",
                    response.status_code
                )
            return body.get("data")
        return body

    # Session

    async def get_session(self) -> SessionBundle:
        """Get or create the session with its agents and conversations."""
        data = await self._request("GET", "/tutors/session")
        return SessionBundle.model_validate(data)

    async def set_mode(self, mode: str) -> Session:
        """
        Persist the session mode.

        Args:
            mode: New mode

        Returns:
            Updated session
        """
        data = await self._request("PUT", "/tutors/session/mode", json={"mode": mode})
        return Session.model_validate(data)

    async def set_active_agent(self, agent_id: int) -> Session:
        """
        Persist the active agent for manual mode.

        Args:
            agent_id: Agent to activate

        Returns:
            Updated session
        """
        data = await self._request("PUT", "/tutors/session/active-agent", json={"chatbotId": agent_id})
        return Session.model_validate(data)

    # Conversations

    async def list_conversations(self) -> List[Conversation]:
        """List all conversations with previews."""
        data = await self._request("GET", "/tutors/conversations")
        return [Conversation.model_validate(c) for c in data or []]

    async def get_conversation(self, agent_id: int) -> ConversationWithMessages:
        """Get the conversation with an agent, including its full history."""
        data = await self._request("GET", f"/tutors/conversations/{agent_id}")
        return ConversationWithMessages.model_validate(data)

    async def clear_conversation(self, agent_id: int):
        """Delete all messages of the conversation with an agent."""
        await self._request("DELETE", f"/tutors/conversations/{agent_id}")

    # Messaging

    async def send_message(
        self,
        agent_id: int,
        message: str,
        collaborative_settings: Optional[CollaborativeSettings] = None
    ) -> SendMessageResponse:
        """
        Send a user turn to an agent.

        Args:
            agent_id: Target agent
            message: Message text
            collaborative_settings: Team settings (collaborative mode only)

        Returns:
            Confirmed user and assistant messages with routing/collaborative info
        """
        payload: Dict[str, Any] = {"message": message}
        if collaborative_settings is not None:
            payload["collaborativeSettings"] = collaborative_settings.model_dump(by_alias=True, exclude_none=True)

        data = await self._request("POST", f"/tutors/conversations/{agent_id}/message", json=payload)
        return SendMessageResponse.model_validate(data)

    # Agents

    async def list_agents(self) -> List[Agent]:
        """List available tutor agents."""
        data = await self._request("GET", "/tutors/agents")
        return [Agent.model_validate(a) for a in data or []]

    # Analytics

    async def get_stats(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> TutorStats:
        """Get aggregate tutor usage stats."""
        data = await self._request(
            "GET",
            "/tutors/logs/stats",
            params={"startDate": start_date, "endDate": end_date}
        )
        return TutorStats.model_validate(data or {})

    async def get_logs(
        self,
        user_id: Optional[int] = None,
        session_id: Optional[int] = None,
        event_type: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[InteractionLog]:
        """Get tutor interaction logs."""
        data = await self._request(
            "GET",
            "/tutors/logs",
            params={
                "userId": user_id,
                "sessionId": session_id,
                "eventType": event_type,
                "startDate": start_date,
                "endDate": end_date,
                "limit": limit,
            }
        )
        return [InteractionLog.model_validate(row) for row in data or []]

    # Emotional pulse

    async def log_pulse(
        self,
        emotion: str,
        context: str = "chatbot",
        context_id: Optional[int] = None,
        agent_id: Optional[int] = None
    ) -> Optional[EmotionalPulse]:
        """
        Log an emotional pulse.

        Args:
            emotion: Emotion tag
            context: Context type (chatbot, lesson, assignment)
            context_id: Conversation/lesson/assignment id
            agent_id: Agent the learner was talking to

        Returns:
            The stored pulse, if the backend echoes it
        """
        payload: Dict[str, Any] = {"emotion": emotion, "context": context}
        if context_id is not None:
            payload["contextId"] = context_id
        if agent_id is not None:
            payload["agentId"] = agent_id

        data = await self._request("POST", "/emotional-pulse", json=payload)
        return EmotionalPulse.model_validate(data) if data else None

    async def get_pulse_history(
        self,
        context: Optional[str] = None,
        context_id: Optional[int] = None,
        agent_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> PulseHistory:
        """Get the current user's pulse history, newest first."""
        data = await self._request(
            "GET",
            "/emotional-pulse/my-history",
            params={
                "context": context,
                "contextId": context_id,
                "agentId": agent_id,
                "limit": limit,
                "offset": offset,
            }
        )
        return PulseHistory.model_validate(data or {})
