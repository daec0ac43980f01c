"""Meeting summaries generated with OpenAI chat completions."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Protocol

from dotenv import load_dotenv
from openai import OpenAI

from ..config import DEFAULT_CONTEXT_WINDOW, DEFAULT_SUMMARY_MODEL
from ..errors import AuthError, SummarizationError
from ..storage import Paths, write_atomic
from ..text import Messages

SUMMARY_PROMPT = """You are an expert at summarizing meeting transcripts.

Summarize the following meeting transcript in a clear, structured format:

1. **Key Topics** (3-5 bullet points)
2. **Action Items** (if any, with who/what)
3. **Decisions Made** (if any)
4. **Follow-ups** (if any)

Be concise but comprehensive. Focus on actionable insights."""

CHUNK_SEPARATOR = "\n\n---\n\n"
SUMMARY_TEMPERATURE = 0.3


class ChatBackend(Protocol):
    def complete(self, system_prompt: str, text: str) -> str:
        raise NotImplementedError  # pragma: no cover


class OpenAISummarizer:
    """Chat backend that sends one system and one user message per request."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model_name: str = DEFAULT_SUMMARY_MODEL,
        base_url: str | None = None,
    ) -> None:
        load_dotenv()
        if not api_key:
            raise AuthError(Messages.ERROR_OPENAI_KEY_MISSING)
        self.model_name = model_name
        client_kwargs: dict[str, object] = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url.rstrip("/")
        self._client = OpenAI(**client_kwargs)

    def complete(self, system_prompt: str, text: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": text},
                ],
                temperature=SUMMARY_TEMPERATURE,
            )
        except Exception as exc:  # pragma: no cover - API client variations
            message = getattr(exc, "message", None) or str(exc)
            raise SummarizationError(f"{Messages.ERROR_OPENAI_PREFIX}{message}") from exc
        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise SummarizationError(Messages.ERROR_SUMMARY_EMPTY)
        return content


def chunk_transcript(text: str, max_chars: int) -> list[str]:
    """Split *text* on line boundaries into chunks of at most *max_chars*.

    A single line longer than the window becomes its own oversized chunk.
    """
    if len(text) <= max_chars:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines():
        if current and len(current) + len(line) + 1 > max_chars:
            chunks.append(current)
            current = ""
        current += f"{line}\n"
    if current:
        chunks.append(current)
    return chunks


def load_prompt(prompt_file: str | Path | None) -> str:
    if not prompt_file:
        return SUMMARY_PROMPT
    path = Path(prompt_file).expanduser()
    try:
        prompt = path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise SummarizationError(
            Messages.ERROR_PROMPT_FILE.format(path=path, reason=exc)
        ) from exc
    return prompt or SUMMARY_PROMPT


def summarize_transcript(
    text: str,
    backend: ChatBackend,
    *,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
    prompt: str = SUMMARY_PROMPT,
    on_chunk: Callable[[int, int], None] | None = None,
) -> str:
    """Summarize *text*; long transcripts are summarized per chunk, then combined."""
    chunks = chunk_transcript(text, context_window)
    if len(chunks) == 1:
        return backend.complete(prompt, chunks[0])
    partials: list[str] = []
    for index, chunk in enumerate(chunks, start=1):
        if on_chunk is not None:
            on_chunk(index, len(chunks))
        partials.append(backend.complete(prompt, chunk))
    return backend.complete(prompt, CHUNK_SEPARATOR.join(partials))


def summary_path(paths: Paths, md_path: Path) -> Path:
    return paths.summaries_dir / f"{md_path.stem}_summary.md"


def save_summary(paths: Paths, md_path: Path, summary: str) -> Path:
    target = summary_path(paths, md_path)
    write_atomic(target, summary)
    return target
