"""Vision agent: a short spoken impression of how the current page looks.

Page text, prices and links are narrated by the execution agent; this only
describes the visual feel of the latest frame (colours, layout, imagery,
mood). A failed model call degrades to an empty description.
"""

from resight.agents.types import SendEvent
from resight.llm_client import ChatCompletionsClient, LLMClientError, ModelRole
from resight.telemetry import get_logger
from resight.telemetry.events import PAGE_DESCRIBED, PAGE_DESCRIPTION_FAILED
from resight.telemetry.trace import TraceContext

log = get_logger(__name__)

AGENT_NAME = "Vision"

DESCRIBE_PROMPT = (
    "You are describing a webpage screenshot to a blind user. Give a vivid but brief "
    "(2-4 sentences) description of the VISUAL experience: colors, layout style, imagery, "
    "branding feel, and overall mood. Do NOT list text content, prices, or navigation items; "
    "another system handles that. Focus on what a sighted person would feel looking at this page."
)


def build_describe_messages(frame: str, task: str | None = None) -> list[dict]:
    """User message carrying the frame as a data URL plus the instruction text."""
    prompt = DESCRIBE_PROMPT
    if task:
        prompt += f" The user is trying to: {task}."
    return [
        {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{frame}"}},
                {"type": "text", "text": prompt},
            ],
        }
    ]


class VisionAgent:
    """Describes page screenshots through the ``vision`` model role.

    Args:
        llm: Chat-completions client.
        send_event: Trace publisher callback.
    """

    def __init__(self, llm: ChatCompletionsClient, send_event: SendEvent) -> None:  # noqa: D107
        self.llm = llm
        self.send_event = send_event

    async def describe(
        self, frame: str | None, task: str | None = None, trace_ctx: TraceContext | None = None
    ) -> str:
        """Describe ``frame`` (base64 image); empty when there is nothing to say.

        Raises:
            LLMConfigurationError: If the model is not configured.
            ModelConfigError: If the vision role has no model.
        """
        if not frame:
            return ""
        try:
            response = await self.llm.respond(
                ModelRole.VISION, build_describe_messages(frame, task), trace_ctx=trace_ctx
            )
        except LLMClientError as e:
            log.warning(PAGE_DESCRIPTION_FAILED, error=str(e), error_type=type(e).__name__)
            return ""

        description = " ".join(response["content"].split())
        log.info(PAGE_DESCRIBED, length=len(description))
        if description:
            self.send_event(AGENT_NAME, description)
        return description
