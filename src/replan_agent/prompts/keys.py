"""Prompt keys for the YAML templates in this directory."""

from enum import Enum


class ReplanPrompts(str, Enum):
    """Keys in replan.yaml."""

    SYSTEM_PROMPT = "system_prompt"
    OBSERVATION_PROMPT = "observation_prompt"
