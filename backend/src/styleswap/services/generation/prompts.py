"""Prompt composition for style transforms and video animation.

Face preservation is requested purely through instruction text. The provider
is asked to keep facial features unchanged; nothing here verifies that it did,
so identity preservation is best-effort.
"""

MAX_PROMPT_LENGTH = 1000

FACIAL_INSTRUCTION = (
    "CRITICAL: keep the facial features exactly as given in the uploaded photos.\n"
    "1. Analyze the faces (Man/Woman).\n"
    "2. Keep the SAME eyes, nose, and mouth shape.\n"
    "3. Do not change who they are.\n"
    "4. The faces must be a perfect match to the original people."
)

STYLE_SUFFIX = "Apply style only to clothes and background. KEEP FACES 100% SAME AS ORIGINAL."

DEFAULT_VENDOR_PROMPT = "cinematic masterpiece animation"
DEFAULT_NEGATIVE_PROMPT = "blurry, low quality, distorted"


def validate_prompt(prompt: str) -> str:
    """Validate user prompt text before it is sent to a provider.

    Args:
        prompt: Style or motion prompt from the user

    Returns:
        Prompt with surrounding whitespace removed

    Raises:
        ValueError: If prompt exceeds MAX_PROMPT_LENGTH characters
    """
    if not isinstance(prompt, str):
        raise ValueError(f"Prompt must be a string, got {type(prompt).__name__}")

    prompt = prompt.strip()
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValueError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH} characters (got {len(prompt)})"
        )
    return prompt


def compose_style_prompt(prompt: str, refinement: str | None = None) -> str:
    """Build the instruction text for a face-preserving style transform."""
    style_instruction = (
        f"STYLE: {prompt}.\n"
        f"FIXES: {refinement or 'None'}.\n"
        "High quality lighting, clear faces, professional look."
    )
    return f"{FACIAL_INSTRUCTION}\n\n{style_instruction}\n\n{STYLE_SUFFIX}"


def compose_movement_prompt(prompt: str) -> str:
    """Build the animation prompt for the first-party video model."""
    return (
        "Animate realistically. keep the facial features exactly as given in the photos. "
        f"{prompt}. High resolution, smooth motion."
    )
