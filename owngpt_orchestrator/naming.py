"""
Naming convention shared by images, containers and the chat relay.

This is the only place a user-supplied model name and a container name are
reconciled. Distinct raw names that normalize to the same safe name map to
the same container.
"""

IMAGE_PREFIX = "ollama-"
CONTAINER_SUFFIX = "-container"


def safe_model_name(model: str) -> str:
    """Lower-case a model name and replace ``:`` and ``/`` with ``-``."""
    return model.lower().replace(":", "-").replace("/", "-")


def image_name(model: str) -> str:
    return f"{IMAGE_PREFIX}{safe_model_name(model)}"


def container_name(model: str) -> str:
    return f"{image_name(model)}{CONTAINER_SUFFIX}"


def model_from_container(name: str) -> str:
    """Recover the (safe) model name from a container name."""
    if name.startswith(IMAGE_PREFIX):
        name = name[len(IMAGE_PREFIX):]
    if name.endswith(CONTAINER_SUFFIX):
        name = name[:-len(CONTAINER_SUFFIX)]
    return name


def is_model_container(name: str) -> bool:
    return name.startswith(IMAGE_PREFIX) and name.endswith(CONTAINER_SUFFIX)
