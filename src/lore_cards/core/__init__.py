from .candidates import classify, extract_titles, is_banned, next_candidate, scan_for_candidates
from .cards import InMemoryCardStore, StoryCard, create_unique_card, find_card
from .commands import Command, parse_command
from .config import (
    CONFIG_CARD_TITLE,
    LoreConfig,
    apply_config_patch,
    config_to_dict,
    load_config,
    parse_config_text,
    serialize_config,
)
from .engine import LoreEngine
from .errors import AdventureNotFoundError, LoreCardsError, RuleEvaluationError, RuleSyntaxError
from .ports import CardLike, CardStorePort
from .rules import RuleRunner, parse_rule_line, parse_rules
from .scheduler import JobScheduler, append_announcement, build_announcement, extract_after_marker
from .triggers import TriggerEngine, parse_trigger_groups
from .types import (
    JOB_COMPRESS,
    JOB_GENERATE,
    Candidate,
    Classification,
    PendingJob,
    SessionState,
    TurnHost,
)

__all__ = [
    "LoreEngine",
    "LoreConfig",
    "SessionState",
    "TurnHost",
    "Candidate",
    "Classification",
    "PendingJob",
    "JOB_GENERATE",
    "JOB_COMPRESS",
    "CardLike",
    "CardStorePort",
    "StoryCard",
    "InMemoryCardStore",
    "find_card",
    "create_unique_card",
    "CONFIG_CARD_TITLE",
    "load_config",
    "config_to_dict",
    "serialize_config",
    "parse_config_text",
    "apply_config_patch",
    "extract_titles",
    "scan_for_candidates",
    "classify",
    "next_candidate",
    "is_banned",
    "JobScheduler",
    "build_announcement",
    "append_announcement",
    "extract_after_marker",
    "TriggerEngine",
    "parse_trigger_groups",
    "RuleRunner",
    "parse_rule_line",
    "parse_rules",
    "Command",
    "parse_command",
    "LoreCardsError",
    "RuleSyntaxError",
    "RuleEvaluationError",
    "AdventureNotFoundError",
]
