"""Decoding of persisted collaborative synthesis blobs.

Assistant messages produced in collaborative mode carry a ``synthesizedFrom``
JSON string. Two encodings exist in stored data:

* legacy: a bare list of contributions, e.g. ``[{"agentId": 1, ...}]``
* current: ``{"style": "debate", "agentContributions": [...]}``

Anything else decodes to nothing and the message renders as plain text.
"""
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from typing import List, Literal, Optional, Union
from tutor_session.models.schemas import (
    AgentContribution,
    CollaborativeInfo,
    CollaborativeStyle,
    Message,
)
import json
import logging

logger = logging.getLogger(__name__)

_contribution_list = TypeAdapter(List[AgentContribution])


class LegacySynthesis(BaseModel):
    """Bare contribution list; the style was not recorded."""
    kind: Literal["legacy"] = "legacy"
    contributions: List[AgentContribution] = Field(default_factory=list)

    @property
    def style(self) -> CollaborativeStyle:
        return "parallel"


class CurrentSynthesis(BaseModel):
    """Object with explicit style and contribution list."""
    kind: Literal["current"] = "current"
    style: CollaborativeStyle = "parallel"
    contributions: List[AgentContribution] = Field(default_factory=list)


SynthesisBlob = Union[LegacySynthesis, CurrentSynthesis]


def parse_synthesis(raw: Optional[str]) -> Optional[SynthesisBlob]:
    """
    Parse a raw blob into one of the two known shapes.

    Args:
        raw: JSON string from ``Message.synthesized_from``

    Returns:
        The tagged variant, or None when the blob is missing or malformed
    """
    if not raw:
        return None

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.debug(f"Ignoring unparseable synthesis blob: {e}")
        return None

    try:
        if isinstance(data, list):
            return LegacySynthesis(contributions=_contribution_list.validate_python(data))

        if isinstance(data, dict):
            contributions = data.get("agentContributions")
            if not isinstance(contributions, list):
                return None
            return CurrentSynthesis(
                style=data.get("style") or "parallel",
                contributions=_contribution_list.validate_python(contributions)
            )
    except ValidationError as e:
        logger.debug(f"Ignoring invalid synthesis blob: {e.error_count()} errors")
        return None

    return None


def decode_synthesis(raw: Optional[str]) -> Optional[CollaborativeInfo]:
    """
    Turn a raw blob into collaborative info.

    Returns:
        CollaborativeInfo, or None when the blob is unusable or empty
    """
    blob = parse_synthesis(raw)
    if blob is None or not blob.contributions:
        return None
    return CollaborativeInfo(style=blob.style, agent_contributions=blob.contributions)


def encode_synthesis(info: CollaborativeInfo, legacy: bool = False) -> str:
    """
    Serialize contributions in either stored shape.

    Args:
        info: Collaborative info to encode
        legacy: Write the bare-list shape instead of the object shape

    Returns:
        JSON string
    """
    contributions = [
        c.model_dump(by_alias=True, exclude_none=True)
        for c in info.agent_contributions
    ]
    if legacy:
        return json.dumps(contributions)
    return json.dumps({"style": info.style, "agentContributions": contributions})


def decode_message(message: Message) -> Message:
    """Attach collaborative info to an assistant message whose blob parses."""
    if message.role != "assistant" or message.collaborative_info is not None:
        return message

    info = decode_synthesis(message.synthesized_from)
    if info is None:
        return message
    return message.model_copy(update={"collaborative_info": info})


def decode_history(messages: List[Message]) -> List[Message]:
    """Decode every message of a loaded conversation."""
    return [decode_message(m) for m in messages]
