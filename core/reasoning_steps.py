# core/reasoning_steps.py
import re
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple
from config.settings import settings
from core.entities import ReasoningStep

Predicate = Callable[[str], bool]


def matches(pattern: str) -> Predicate:
    rx = re.compile(pattern)
    return lambda q: rx.search(q) is not None


@dataclass(frozen=True)
class StepRule:
    predicate: Predicate
    steps: Tuple[ReasoningStep, ...]


def default_rules(owner: str = settings.PORTFOLIO_OWNER) -> List[StepRule]:
    s = ReasoningStep
    return [
        StepRule(
            matches(r"project|portfolio|work|built|create|develop|app|website|platform"),
            (
                s("🔍", f"Searching through {owner}'s projects..."),
                s("📊", "Analyzing project details & tech stacks..."),
            ),
        ),
        StepRule(
            matches(
                r"skill|tech|programming|framework|language|stack|tool|proficien"
                r"|react|next\.?js|laravel|typescript|python|javascript"
            ),
            (
                s("🔍", "Scanning technical skill database..."),
                s("📊", "Mapping proficiency & real-world usage..."),
            ),
        ),
        StepRule(
            matches(r"experience|job|career|company|role|position|intern|profession"),
            (
                s("🔍", f"Reviewing {owner}'s work experiences..."),
                s("📊", "Analyzing career growth & achievements..."),
            ),
        ),
        StepRule(
            matches(r"education|university|school|degree|gpa|study|college|academic"),
            (
                s("🔍", "Looking up educational background..."),
                s("📊", "Retrieving academic records..."),
            ),
        ),
        StepRule(
            matches(r"youtube|video|content|channel|tiktok|social|creator|subscriber|instagram"),
            (
                s("🔍", "Fetching content creation data..."),
                s("📊", "Compiling platform statistics..."),
            ),
        ),
        StepRule(
            matches(r"contact|hire|email|whatsapp|reach|connect|collaborat"),
            (s("🔍", "Retrieving contact information..."),),
        ),
        StepRule(
            matches(r"cert|course|training|credential|badge"),
            (s("🔍", "Scanning certification records..."),),
        ),
        StepRule(
            matches(r"compare|\bvs\b|versus|difference|better|between"),
            (s("⚖️", "Running comparison analysis..."),),
        ),
        StepRule(
            matches(r"recommend|suggest|advice|should|best|help|guide"),
            (s("💡", "Generating personalized insights..."),),
        ),
        StepRule(
            matches(r"who|about|background|personal|bio|introduction"),
            (s("🔍", f"Compiling {owner}'s profile data..."),),
        ),
        StepRule(
            matches(r"hobby|fun\s?fact|interest|music|game"),
            (s("🔍", "Exploring personal interests & fun facts..."),),
        ),
        StepRule(
            matches(r"\bage\b|born|birthday|how old"),
            (s("🔍", "Looking up personal details..."),),
        ),
    ]


class ReasoningStepPlanner:
    """
    Builds the reasoning step list shown while an answer is produced:
    an opening step, the steps of every matching rule in table order (or a
    generic search step), then a composing step and the final step.
    """

    OPENING = ReasoningStep("🔄", "Analyzing your question...")
    COMPOSING = ReasoningStep("🧠", "Composing comprehensive response...")
    FINAL = ReasoningStep("✅", "Analysis complete!")

    def __init__(
        self,
        rules: Sequence[StepRule] = (),
        owner: str = settings.PORTFOLIO_OWNER,
    ) -> None:
        self._rules = list(rules) or default_rules(owner)
        self._fallback = ReasoningStep("🔍", f"Searching {owner}'s knowledge base...")

    def build(self, query: str) -> List[ReasoningStep]:
        q = (query or "").lower()
        steps = [self.OPENING]
        matched = False
        for rule in self._rules:
            if rule.predicate(q):
                steps.extend(rule.steps)
                matched = True
        if not matched:
            steps.append(self._fallback)
        steps.append(self.COMPOSING)
        steps.append(self.FINAL)
        return steps
