"""
OwnGPT Orchestrator - Model Container Lifecycle and Chat Relay Service.

Provides centralized control for:
- Building and starting one Ollama container per requested model
- Tracking which container is the active ("current") model
- Readiness polling of a freshly started container
- Blocking and streaming chat relay to the active model
"""

__version__ = "0.1.0"
