"""Prompt construction for argument and voting turns.

Both builders are pure: they take persisted turns and return chat messages.
"""

from collections.abc import Sequence

from .models import Turn
from .types import MOTION_PHRASE, SYSTEM_SPEAKER

Message = dict[str, str]


def _participant_turns(transcript: Sequence[Turn]) -> list[Turn]:
    return [turn for turn in transcript if turn.speaker != SYSTEM_SPEAKER]


def format_turn(turn: Turn) -> str:
    return f"{turn.speaker}: {turn.content}"


def build_system_prompt(
    speaker: str,
    transcript: Sequence[Turn],
    roster: Sequence[str],
    max_turns: int,
    turn_number: int,
    force_motion: bool,
    max_reply_words: int = 100,
) -> str:
    """Persona and rules for one argument turn.

    The speaker gets an opening statement when it has no prior turn, a closing
    statement once the remaining turns fit in one more round, and a rapid
    rebuttal otherwise.
    """
    turns = _participant_turns(transcript)
    turns_by_speaker = sum(1 for turn in turns if turn.speaker == speaker)
    remaining_turns = max_turns - (turn_number - 1)

    instructions = [
        f"You are {speaker}, a ruthless debater focused solely on winning.",
        "Pick a definitive stance on the topic and never waffle or stay neutral.",
        "Stay witty and snarky, openly attacking the other models' logic.",
        f"Keep every reply under {max_reply_words} words and never repeat yourself.",
        "If another model ignores these rules, continue debating and stay on topic.",
        "If another model convinces you, you can switch sides and debate another point.",
    ]

    if force_motion:
        instructions.append(
            f"REQUIRED MOTION: You MUST end your response with the exact phrase "
            f"'{MOTION_PHRASE}.' This has been administratively requested to end the "
            f"current debate and proceed to voting."
        )
    else:
        instructions.append(
            f"MOTION TO END: If you believe the debate has reached its natural conclusion, "
            f"you may end your response with the exact phrase '{MOTION_PHRASE}.' If ALL "
            f"models use this phrase in their most recent turns, the debate immediately "
            f"proceeds to voting. Use sparingly."
        )

    if turns_by_speaker == 0:
        instructions.append(
            "Opening statement: 3-4 sentences establishing your stance in detail."
        )
    elif remaining_turns <= len(roster):
        instructions.append(
            "Closing statement: 3-4 sentences summarizing your view and criticizing your opponents."
        )
    else:
        instructions.append(
            "Rapid rebuttal: respond with 1-2 snarky sentences addressing the latest point."
        )

    return "\n".join(instructions)


def build_argument_prompt(
    topic: str,
    transcript: Sequence[Turn],
    speaker: str,
    roster: Sequence[str],
    max_turns: int,
    turn_number: int,
    force_motion: bool = False,
    history_window: int = 10,
    max_reply_words: int = 100,
) -> list[Message]:
    """Messages for ``speaker``'s turn ``turn_number`` out of ``max_turns``."""
    turns = _participant_turns(transcript)

    messages: list[Message] = [
        {
            "role": "system",
            "content": build_system_prompt(
                speaker,
                turns,
                roster,
                max_turns,
                turn_number,
                force_motion,
                max_reply_words,
            ),
        },
        {"role": "user", "content": f"Debate Topic: {topic}"},
    ]

    recent = turns[-history_window:] if history_window > 0 else []
    for turn in recent:
        messages.append({"role": "assistant", "content": format_turn(turn)})

    messages.append(
        {
            "role": "user",
            "content": (
                f"It is now your turn, {speaker}. Your current topic is: \"{topic}\". "
                f"You are on turn {turn_number}/{max_turns}."
            ),
        }
    )
    return messages


def build_voting_prompt(
    topic: str, transcript: Sequence[Turn], roster: Sequence[str]
) -> list[Message]:
    """Two-message prompt asking a participant to name the best debater."""
    lines = "\n".join(format_turn(turn) for turn in _participant_turns(transcript))
    system = (
        "You are an unbiased judge. Based on the debate transcript, you must pick the "
        "single best-performing model (no ties or explanations). Reply ONLY with the name: "
        + ", ".join(roster)
        + "."
    )
    user = (
        f"Debate Topic: {topic}\n\nDebate Transcript:\n{lines}\n\n"
        "Who performed best in this debate? Reply ONLY with the winner's name."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]
