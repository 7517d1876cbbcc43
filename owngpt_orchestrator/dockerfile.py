"""
Build-context producer for model images.

The generated image starts the Ollama server, pulls the requested model and
preloads it before serving. The orchestrator only needs the Dockerfile to
exist in the build context directory before the build starts.
"""

import logging
from pathlib import Path
from string import Template

logger = logging.getLogger("OwnGPT.Orchestrator.Dockerfile")

DOCKERFILE_NAME = "Dockerfile"

_DOCKERFILE_TEMPLATE = Template(r"""FROM ollama/ollama:latest

# Install curl for health checks
RUN apt-get update && apt-get install -y curl && rm -rf /var/lib/apt/lists/*

# Performance settings for low-latency responses
ENV OLLAMA_NUM_PARALLEL=2
ENV OLLAMA_MAX_LOADED_MODELS=1
ENV OLLAMA_FLASH_ATTENTION=1
ENV OLLAMA_KEEP_ALIVE=10m
ENV OLLAMA_HOST=0.0.0.0:11434
ENV OLLAMA_MAX_QUEUE=1
ENV OLLAMA_RUNNERS_DIR=/tmp

EXPOSE 11434

RUN printf '%s\n' \
    '#!/bin/bash' \
    'set -e' \
    'echo "Starting Ollama server..."' \
    'ollama serve &' \
    'OLLAMA_PID=$$!' \
    'echo "Waiting for Ollama to be ready..."' \
    'sleep 10' \
    'while ! curl -s http://localhost:11434/api/tags >/dev/null 2>&1; do' \
    '    sleep 2' \
    '    echo "Still waiting for Ollama..."' \
    'done' \
    'echo "Ollama is ready, pulling model: ${model}"' \
    'ollama pull ${model}' \
    'echo "Preloading model for faster responses..."' \
    'curl -s -X POST http://localhost:11434/api/generate -d "{\"model\": \"${model}\", \"prompt\": \"Hello\", \"stream\": false, \"keep_alive\": \"5m\"}" || true' \
    'echo "Model ${model} is ready!"' \
    'wait $$OLLAMA_PID' \
    > /usr/local/bin/start-with-model.sh && chmod +x /usr/local/bin/start-with-model.sh

ENTRYPOINT ["/usr/local/bin/start-with-model.sh"]
""")


def generate_dockerfile(model: str) -> str:
    """Render the Dockerfile for a model (name is lower-cased, tag kept)."""
    return _DOCKERFILE_TEMPLATE.substitute(model=model.lower())


def write_build_context(model: str, models_dir: Path) -> Path:
    """Write the Dockerfile for ``model`` into ``models_dir`` and return the dir."""
    models_dir = Path(models_dir)
    models_dir.mkdir(parents=True, exist_ok=True)
    dockerfile = models_dir / DOCKERFILE_NAME
    dockerfile.write_text(generate_dockerfile(model))
    logger.info(f"Wrote Dockerfile for {model} to {dockerfile}")
    return models_dir
