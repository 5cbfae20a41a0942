"""Per-step outcomes and the final human-readable report."""

from __future__ import annotations

from dataclasses import dataclass, field

REPORT_TITLE = "Exoquic PostgreSQL Configuration Report"


@dataclass
class StepResult:
    """Outcome of one provisioning step: report text, or an error message."""

    name: str
    title: str | None = None
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def render(self) -> str:
        body = self.text if self.ok else f"WARNING: {self.error}\n"
        if self.title is None:
            return body
        return f"{self.title}:\n{'-' * (len(self.title) + 1)}\n{body}"


@dataclass
class Report:
    """Append-only, ordered collection of step results."""

    results: list[StepResult] = field(default_factory=list)

    def add(self, result: StepResult) -> StepResult:
        self.results.append(result)
        return result

    @property
    def failures(self) -> list[StepResult]:
        return [r for r in self.results if not r.ok]

    def get(self, name: str) -> StepResult | None:
        return next((r for r in self.results if r.name == name), None)

    def render(self) -> str:
        out = f"{REPORT_TITLE}\n{'=' * len(REPORT_TITLE)}\n\n"
        for result in self.results:
            out += result.render() + "\n"
        return out
