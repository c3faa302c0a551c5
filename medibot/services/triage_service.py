"""Keyword-based severity triage for patient chat messages."""
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..models import Severity

# Checked in this order; the first list with a hit decides the severity.
SEVERITY_KEYWORDS: Tuple[Tuple[Severity, Tuple[str, ...]], ...] = (
    (Severity.high, (
        "chest pain",
        "difficulty breathing",
        "severe headache",
        "high fever",
        "blood",
        "unconscious",
        "emergency",
        "can't breathe",
        "heart attack",
        "stroke",
        "severe pain",
        "bleeding",
        "suicide",
        "overdose",
        "poisoning",
        "severe allergic reaction",
        "anaphylaxis",
    )),
    (Severity.medium, (
        "fever",
        "persistent cough",
        "vomiting",
        "dizziness",
        "infection",
        "migraine",
        "anxiety",
        "depression",
        "rash",
        "swelling",
        "nausea",
        "fatigue",
        "insomnia",
        "back pain",
        "joint pain",
    )),
    (Severity.low, (
        "mild headache",
        "runny nose",
        "slight cough",
        "minor fatigue",
        "sore throat",
        "minor pain",
        "cold",
        "sneezing",
        "minor cut",
        "bruise",
        "muscle soreness",
    )),
)

BOT_REPLIES: Dict[Severity, str] = {
    Severity.high: (
        "What you describe could be serious and needs prompt medical attention. "
        "If this is an emergency, call your local emergency number now. "
        "You can also book an appointment with one of our doctors right away."
    ),
    Severity.medium: (
        "It sounds like a doctor should take a look at these symptoms. "
        "Rest, stay hydrated and monitor how you feel. "
        "Would you like to book an appointment?"
    ),
    Severity.low: (
        "Thanks for sharing. This sounds mild, but keep an eye on it and "
        "reach out to a doctor if things get worse."
    ),
}


@dataclass(frozen=True)
class TriageResult:
    severity: Severity
    appointment_needed: bool
    matched_keywords: List[str] = field(default_factory=list)


def classify_message(message: str) -> TriageResult:
    """Map free text to a severity tag and a booking suggestion.

    Pure function: the same message always yields the same result. Messages
    with no keyword hit are classified ``low``.
    """
    text = message.lower()
    for severity, keywords in SEVERITY_KEYWORDS:
        matched = [keyword for keyword in keywords if keyword in text]
        if matched:
            return TriageResult(
                severity=severity,
                appointment_needed=severity != Severity.low,
                matched_keywords=matched,
            )
    return TriageResult(severity=Severity.low, appointment_needed=False)


def bot_reply_for(severity: Severity) -> str:
    return BOT_REPLIES[severity]
