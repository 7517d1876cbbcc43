"""Tests for the model/container naming convention."""

from owngpt_orchestrator.naming import (
    container_name,
    image_name,
    is_model_container,
    model_from_container,
    safe_model_name,
)


def test_safe_name_lowercases_and_replaces_separators():
    assert safe_model_name("Llama2:13B") == "llama2-13b"
    assert safe_model_name("Code/Llama") == "code-llama"
    assert safe_model_name("mistral") == "mistral"


def test_image_and_container_names():
    assert image_name("llama2:13b") == "ollama-llama2-13b"
    assert container_name("llama2:13b") == "ollama-llama2-13b-container"


def test_model_from_container_strips_prefix_and_suffix():
    assert model_from_container("ollama-mistral-container") == "mistral"
    assert model_from_container("ollama-llama2-13b-container") == "llama2-13b"


def test_distinct_raw_names_collapse_to_one_container():
    assert container_name("Llama2:13B") == container_name("llama2/13b")


def test_is_model_container():
    assert is_model_container("ollama-mistral-container")
    assert not is_model_container("ollama-mistral")
    assert not is_model_container("postgres")
