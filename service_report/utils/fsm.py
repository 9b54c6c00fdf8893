"""Simple finite state machine utility for enforcing allowed status transitions.

Usage:
    from service_report.utils.fsm import TransitionValidator
    REPORT_FSM = TransitionValidator({
        'open': {'progress'},
        'progress': {'progress', 'done'},
        'done': {'done', 'progress'},
    })
    REPORT_FSM.assert_can_transition(current_status, target_status)

Raises TransitionError (rendered as 400) if invalid.
"""
from __future__ import annotations
from typing import Dict, Set
from service_report.errors import TransitionError

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise TransitionError(f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
