"""GroqStatementAgent: statement extraction through the Groq chat completions API.

Provider-neutral content blocks are rendered into Groq chat message parts: text stays text,
images become base64 ``image_url`` data URIs, and PDF documents are flattened with pdfplumber
into their text layer (or rasterized page images when a scan has no text layer).
"""

import base64
import io

import pdfplumber
from groq import Groq

from statement_ingest.agents.base import BaseAgent, ContentBlock, ExtractionRequest, ExtractionResult
from statement_ingest.agents.prompts import DOCUMENT_TEXT_HEADER
from statement_ingest.agents.registry import AgentRegistry
from statement_ingest.core.errors import ExtractionServiceError
from statement_ingest.core.settings import Settings
from statement_ingest.core.utils import get_logger

PAGE_IMAGE_RESOLUTION = 150
# single attempt, no client-side deadline
CLIENT_MAX_RETRIES = 0
CLIENT_TIMEOUT = None
MAX_OUTPUT_LOG_LEN = 500

logger = get_logger("statement-ingest.agent")


class GroqStatementAgent(BaseAgent):
    """Agent that sends extraction requests to a Groq-hosted vision model."""

    def __init__(self, llm_client: object, settings: Settings) -> None:
        """Initialize the agent with a Groq client and settings."""
        self.llm_client = llm_client
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "GroqStatementAgent":
        """Build the agent with a Groq client configured from settings."""
        client = Groq(api_key=settings.groq_api_key, max_retries=CLIENT_MAX_RETRIES, timeout=CLIENT_TIMEOUT)
        return cls(client, settings)

    def complete(self, request: ExtractionRequest) -> ExtractionResult:
        """Call Groq once, without retries, and return the raw completion text."""
        parts = []
        for block in request.blocks:
            parts.extend(self._render_block(block))
        messages = [
            {"role": "system", "content": request.system},
            {"role": "user", "content": parts},
        ]
        logger.info(f"Calling Groq model={self.settings.groq_model} parts={len(parts)} max_tokens={request.max_tokens}")
        try:
            completion = self.llm_client.chat.completions.create(
                model=self.settings.groq_model,
                messages=messages,
                temperature=request.temperature,
                max_completion_tokens=request.max_tokens,
                stream=False,
            )
        except Exception as exc:
            msg = f"Groq API call failed: {exc}"
            logger.exception(msg)
            raise ExtractionServiceError(msg) from exc
        text = completion.choices[0].message.content or ""
        usage = getattr(completion, "usage", None)
        logger.info(f"Groq output: {text[:MAX_OUTPUT_LOG_LEN]}")
        return ExtractionResult(
            text=text,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            model=self.settings.groq_model,
        )

    def _render_block(self, block: ContentBlock) -> list[dict]:
        if block.type == "text":
            return [{"type": "text", "text": block.text or ""}]
        if block.type == "image":
            return [self._image_part(block.media_type or "image/jpeg", block.data or b"")]
        return self._document_parts(block.data or b"")

    @staticmethod
    def _image_part(media_type: str, data: bytes) -> dict:
        encoded = base64.b64encode(data).decode("ascii")
        return {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{encoded}"}}

    def _document_parts(self, data: bytes) -> list[dict]:
        """Flatten a PDF into a text part, or page images when it has no text layer."""
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                pages_text = [page.extract_text() or "" for page in pdf.pages]
                text = "\n\n".join(t for t in pages_text if t.strip())
                if text:
                    logger.info(f"PDF text layer found: {len(pdf.pages)} pages, {len(text)} chars")
                    return [{"type": "text", "text": f"{DOCUMENT_TEXT_HEADER}\n{text}"}]
                pages = pdf.pages[: self.settings.max_pdf_page_images]
                logger.info(f"PDF has no text layer; rendering {len(pages)} page images")
                parts = []
                for page in pages:
                    buffer = io.BytesIO()
                    page.to_image(resolution=PAGE_IMAGE_RESOLUTION).original.save(buffer, format="PNG")
                    parts.append(self._image_part("image/png", buffer.getvalue()))
                return parts
        except Exception as exc:
            msg = f"Could not read PDF document: {exc}"
            logger.exception(msg)
            raise ExtractionServiceError(msg) from exc


AgentRegistry.register("groq", GroqStatementAgent)
