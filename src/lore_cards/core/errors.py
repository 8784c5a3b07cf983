from __future__ import annotations


class LoreCardsError(Exception):
    pass


class RuleSyntaxError(LoreCardsError):
    def __init__(self, line: str, reason: str):
        super().__init__(f"{reason}: {line!r}")
        self.line = line
        self.reason = reason


class RuleEvaluationError(LoreCardsError):
    pass


class AdventureNotFoundError(LoreCardsError):
    pass
