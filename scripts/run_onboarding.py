#!/usr/bin/env python3
"""
Run the onboarding conversation in a terminal.

Interactive by default. With --answers the runner is scripted from a YAML
file so the whole flow (welcome to handoff) runs unattended:

    name: Sam               # optional: correct the display name
    provider: strava        # optional: connect this wearable, else skip
    answers:
      runner_type: casual
      off_limits_days: [mon, fri]
      casual_pace: "5:30"

Questions without a scripted answer get their first option (or are skipped
when skippable).

Usage:
    python scripts/run_onboarding.py --name Sam
    python scripts/run_onboarding.py --answers scripts/sample_answers.yaml --instant
    python scripts/run_onboarding.py --answers answers.yaml --output result.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cadence.core.config import TimingConfig, onboarding_config
from cadence.core.exceptions import InputValidationError
from cadence.core.logging import bind_context, configure_logging, get_logger
from cadence.core.narrative_loader import load_narrative
from cadence.core.questionnaire_loader import load_questionnaire
from cadence.domain.models.questionnaire import SKIP_VALUE, InputKind, Question
from cadence.domain.models.scene import ConnectionResult
from cadence.services.narrative_service import NarrativeService
from cadence.services.scene_orchestrator import Awaiting, OnboardingOrchestrator
from cadence.services.section_flow import SectionFlow

PROVIDERS = ["strava", "garmin", "apple_health", "coros"]

log = get_logger(__name__)


class ScriptedConnector:
    """Wearable connector that always succeeds, for terminal runs."""

    def __init__(self, athlete_first_name: Optional[str] = None):
        self.athlete_first_name = athlete_first_name

    async def connect(self, provider_id: str) -> Optional[ConnectionResult]:
        return ConnectionResult(
            provider_id=provider_id, athlete_first_name=self.athlete_first_name
        )


def print_lines(lines: List[str]) -> None:
    for line in lines:
        print(f"  {line}")
    print()


def default_answer(question: Question) -> Any:
    if question.allow_skip:
        return SKIP_VALUE
    if question.input_kind == InputKind.MULTI_SELECT:
        return [question.options[0].value]
    if question.options:
        return question.options[0].value
    raise SystemExit(f"No scripted answer for '{question.id}' ({question.input_kind.value})")


def apply_answer(flow: SectionFlow, question: Question, value: Any) -> None:
    """Feed one answer into the section flow."""
    if question.allow_skip and value == SKIP_VALUE:
        flow.skip_question()
    elif question.input_kind == InputKind.SINGLE_SELECT:
        flow.select_option(str(value))
    elif question.input_kind == InputKind.MULTI_SELECT:
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item not in flow.selection:
                flow.toggle_option(str(item))
        flow.confirm_selection()
    else:
        flow.submit_text(str(value))


async def ask(prompt: str) -> str:
    return (await asyncio.to_thread(input, prompt)).strip()


async def ask_question(question: Question) -> Any:
    print(f"? {question.prompt}")
    for i, option in enumerate(question.options, 1):
        print(f"   {i}. {option.label}")
    if question.allow_skip:
        print(f"   (enter '{SKIP_VALUE}' for: {question.skip_label})")

    raw = await ask("> ")
    if question.allow_skip and raw == SKIP_VALUE:
        return SKIP_VALUE
    if not question.options:
        return raw

    picks = []
    for token in raw.replace(",", " ").split():
        if token.isdigit() and 1 <= int(token) <= len(question.options):
            picks.append(question.options[int(token) - 1].value)
        else:
            picks.append(token)
    if question.input_kind == InputKind.MULTI_SELECT:
        return picks
    return picks[0] if picks else raw


async def run_onboarding(
    script: Optional[Dict[str, Any]],
    user_name: Optional[str],
    provider: Optional[str],
    instant: bool,
) -> Dict[str, Any]:
    questionnaire = load_questionnaire()
    narrative = load_narrative([q.id for q in questionnaire.all_questions()])
    timing = TimingConfig.instant() if instant else onboarding_config.timing

    submitted: Dict[str, Any] = {}
    orchestrator = OnboardingOrchestrator(
        questionnaire,
        NarrativeService(narrative),
        timing=timing,
        user_name=user_name,
        fallback_display_name=onboarding_config.fallback_display_name,
        device_connector=ScriptedConnector(user_name),
        on_section_flow_complete=submitted.update,
        on_lines_revealed=print_lines,
    )
    answers: Dict[str, Any] = (script or {}).get("answers") or {}

    orchestrator.start()
    try:
        while not orchestrator.is_complete:
            await orchestrator.settle()
            awaiting = orchestrator.awaiting

            if awaiting is Awaiting.NAME:
                new_name = (script or {}).get("name")
                if script is None:
                    new_name = await ask(f"Call you {orchestrator.display_name}? (enter to confirm, or type a name) ")
                if new_name:
                    await orchestrator.change_name(new_name)
                else:
                    await orchestrator.confirm_name()

            elif awaiting is Awaiting.CONTINUE:
                if script is None:
                    await ask("[enter] Let's go ")
                orchestrator.continue_welcome()

            elif awaiting is Awaiting.ANSWER:
                flow = orchestrator.flow
                question = flow.current_question
                if script is None:
                    value = await ask_question(question)
                else:
                    value = answers.get(question.id)
                    if value is None:
                        value = default_answer(question)
                    print(f"? {question.prompt}\n> {value}\n")
                try:
                    apply_answer(flow, question, value)
                except InputValidationError as e:
                    if script is not None:
                        raise
                    print(f"! {e.message}")

            elif awaiting is Awaiting.CONNECT:
                choice = provider
                if script is None:
                    choice = await ask(f"Connect a wearable ({', '.join(PROVIDERS)}) or enter to skip: ")
                if choice:
                    if not await orchestrator.connect(choice):
                        print(f"! {orchestrator.last_error.message}")
                        orchestrator.skip_connect()
                else:
                    orchestrator.skip_connect()

            elif awaiting is Awaiting.RETRY_SUBMIT:
                await orchestrator.retry_submit()

            elif awaiting is Awaiting.FINISH:
                if script is None:
                    await ask("[enter] We're good ")
                orchestrator.finish()

            else:
                raise RuntimeError(f"Onboarding stalled in scene '{orchestrator.scene.value}'")
    finally:
        orchestrator.close()

    return {
        "display_name": orchestrator.display_name,
        "connected_provider": orchestrator.connected_provider,
        "responses": submitted or orchestrator.responses.as_dict(),
    }


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the Cadence onboarding conversation")
    parser.add_argument(
        "--answers",
        type=Path,
        help="YAML file with scripted answers (runs unattended)",
    )
    parser.add_argument(
        "--name",
        default=None,
        help=f"Display name on file (default: {onboarding_config.fallback_display_name!r})",
    )
    parser.add_argument(
        "--provider",
        default=None,
        help="Wearable to connect in scripted runs (overrides the answers file)",
    )
    parser.add_argument(
        "--instant",
        action="store_true",
        help="Zero every delay instead of streaming text",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output JSON file for the final responses",
    )

    args = parser.parse_args()

    log_file = configure_logging()
    bind_context(entrypoint="run_onboarding")

    script = None
    if args.answers:
        with open(args.answers, encoding="utf-8") as f:
            script = yaml.safe_load(f) or {}
    provider = args.provider or (script or {}).get("provider")

    log.info("cli_started", scripted=script is not None, log_file=str(log_file))
    result = asyncio.run(
        run_onboarding(script, user_name=args.name, provider=provider, instant=args.instant)
    )

    if args.output:
        args.output.write_text(json.dumps(result, indent=2))
        print(f"Results saved to: {args.output}")


if __name__ == "__main__":
    main()
