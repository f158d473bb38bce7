"""
Lists the Gemini models usable for report generation.

Handy when GEMINI_MODEL has to change: only models supporting
'generateContent' can serve the report endpoint.
"""

import logging
from typing import List, Optional

import google.generativeai as genai

from mood_report.adapters.clients.gemini import GeminiConfig

logger = logging.getLogger(__name__)

GENERATE_METHOD = "generateContent"


def list_generating_models(config: Optional[GeminiConfig] = None) -> List[str]:
    """
    Queries the model catalogue with the configured API key.

    Args:
        config: Gemini configuration (read from the environment by default).

    Returns:
        Names of the models that support generateContent.

    Raises:
        ValueError: If GEMINI_API_KEY is not set.
    """
    config = config or GeminiConfig.from_env()
    genai.configure(api_key=config.api_key)

    logger.info("Listing available models...")
    names = []
    for model in genai.list_models():
        if GENERATE_METHOD in model.supported_generation_methods:
            logger.info(f"   - {model.name} (Display: {model.display_name})")
            names.append(model.name)

    if not names:
        logger.warning(f"No models found that support '{GENERATE_METHOD}'.")
    elif not any(name.endswith(f"/{config.model}") or name == config.model for name in names):
        logger.warning(f"Configured model '{config.model}' is not in the list")
    return names
