"""Desktop assistant backed by locally installed LLM agent CLIs."""

__version__ = "0.1.0"

__all__ = ["__version__"]
