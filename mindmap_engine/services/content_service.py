from mindmap_engine.core.config import Settings, settings
from mindmap_engine.schemas.results import ContentValidation


def validate_content(text: str, config: Settings = settings) -> ContentValidation:
    """
    Length policy for synthesis input. Active bounds come from
    MIN_TEXT_CHARS / MAX_TEXT_CHARS (50 and 50,000 by default).
    """
    if not text or not text.strip():
        return ContentValidation(valid=False, reason="Text required: please provide text content.")

    length = len(text)
    if length < config.MIN_TEXT_CHARS:
        return ContentValidation(
            valid=False,
            reason=(
                f"Text is too short for meaningful synthesis "
                f"({length} characters, minimum {config.MIN_TEXT_CHARS})."
            ),
        )

    if length > config.MAX_TEXT_CHARS:
        return ContentValidation(
            valid=False,
            reason=(
                f"Text is too long, trim input to {config.MAX_TEXT_CHARS:,} characters "
                f"or less (got {length:,})."
            ),
        )

    return ContentValidation(valid=True)
