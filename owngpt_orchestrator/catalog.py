"""Curated list of Ollama models offered for activation."""

from typing import List

from .models.schemas import AvailableModel

POPULAR_MODELS: List[AvailableModel] = [
    AvailableModel(name="mistral", description="Fast and efficient 7B model", size="4.1GB", official=True),
    AvailableModel(name="llama2", description="Meta's powerful language model", size="3.8GB", official=True),
    AvailableModel(name="llama2:13b", description="Larger Llama2 model with better performance", size="7.3GB", official=True),
    AvailableModel(name="codellama", description="Specialized for code generation", size="3.8GB", official=True),
    AvailableModel(name="codellama:13b", description="Larger CodeLlama for complex coding tasks", size="7.3GB", official=True),
    AvailableModel(name="vicuna", description="Fine-tuned for conversations", size="3.8GB"),
    AvailableModel(name="orca-mini", description="Compact and fast model", size="1.9GB"),
    AvailableModel(name="neural-chat", description="Optimized for chat interactions", size="4.1GB"),
    AvailableModel(name="starcode", description="Code generation and completion", size="4.3GB"),
    AvailableModel(name="phind-codellama", description="Enhanced CodeLlama for development", size="3.8GB"),
]


def merge_catalog(local: List[AvailableModel]) -> List[AvailableModel]:
    """Curated models first, then local models not already listed."""
    merged = list(POPULAR_MODELS)
    seen = {m.name for m in merged}
    for model in local:
        if model.name not in seen:
            merged.append(model)
            seen.add(model.name)
    return merged
