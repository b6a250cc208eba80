"""Fixture data returned instead of calling GitHub when MOCK_GITHUB_API is set.

The payloads go through the same validation as live responses, so a dry run
exercises the full transform and submission path.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..models import Scope
from .schemas import MetricsSnapshot, parse_snapshots

logger = logging.getLogger(__name__)


def sample_day(date: str, active_users: int, engaged_users: int) -> Dict[str, Any]:
    """Build one day of raw API payload, scaled from the user counts."""
    completions = engaged_users * 3 // 4
    return {
        "date": date,
        "total_active_users": active_users,
        "total_engaged_users": engaged_users,
        "copilot_ide_code_completions": {
            "total_engaged_users": completions,
            "languages": [
                {"name": "python", "total_engaged_users": completions // 2},
                {"name": "go", "total_engaged_users": completions // 3},
            ],
            "editors": [
                {
                    "name": "vscode",
                    "total_engaged_users": completions,
                    "models": [
                        {
                            "name": "default",
                            "is_custom_model": False,
                            "total_engaged_users": completions,
                            "languages": [
                                {
                                    "name": "python",
                                    "total_engaged_users": completions // 2,
                                    "total_code_suggestions": completions * 12,
                                    "total_code_acceptances": completions * 4,
                                    "total_code_lines_suggested": completions * 20,
                                    "total_code_lines_accepted": completions * 7,
                                },
                                {
                                    "name": "go",
                                    "total_engaged_users": completions // 3,
                                    "total_code_suggestions": completions * 6,
                                    "total_code_acceptances": completions * 2,
                                    "total_code_lines_suggested": completions * 9,
                                    "total_code_lines_accepted": completions * 3,
                                },
                            ],
                        }
                    ],
                }
            ],
        },
        "copilot_ide_chat": {
            "total_engaged_users": engaged_users // 2,
            "editors": [
                {
                    "name": "vscode",
                    "total_engaged_users": engaged_users // 2,
                    "models": [
                        {
                            "name": "default",
                            "is_custom_model": False,
                            "total_engaged_users": engaged_users // 2,
                            "total_chats": engaged_users * 3,
                            "total_chat_insertion_events": engaged_users,
                            "total_chat_copy_events": engaged_users // 2,
                        }
                    ],
                }
            ],
        },
        "copilot_dotcom_chat": {
            "total_engaged_users": engaged_users // 4,
            "models": [
                {
                    "name": "default",
                    "is_custom_model": False,
                    "total_engaged_users": engaged_users // 4,
                    "total_chats": engaged_users,
                }
            ],
        },
        "copilot_dotcom_pull_requests": None,
    }


class FixtureMetricsClient:
    """Drop-in replacement for GitHubMetricsClient that never touches the network."""

    def __init__(
        self,
        enterprise_users: tuple = (100, 80),
        team_users: tuple = (50, 40),
    ):
        self.enterprise_users = enterprise_users
        self.team_users = team_users

    async def fetch(self, scope: Scope) -> List[MetricsSnapshot]:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        active, engaged = self.team_users if scope.is_team else self.enterprise_users
        logger.info("Using fixture metrics for %s", scope.label)
        return parse_snapshots([sample_day(today, active, engaged)], scope.label)
