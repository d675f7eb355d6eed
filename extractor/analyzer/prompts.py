"""Prompt text for message classification."""

from ..common.schemas import ChatMessage


ANALYSIS_PROMPT = """You extract reusable knowledge from a web production team's chat history.

Analyze the message below and answer with JSON only.

[Message]
Speaker: {speaker}
Date: {date}
Body:
{body}

[Instructions]
1. category, one of:
   - "implementation-knowhow": technical know-how (coding, CMS, e-commerce, tooling)
   - "policy-instruction": direction or policy for how work should be done
   - "trouble-handling": resolving errors, bugs and incidents
   - "qa-consultation": decision criteria, requirement clarifications, Q&A
   - "excluded": greetings, scheduling and other routine exchanges
2. versatility, one of:
   - "high": applies to most other projects
   - "medium": applies to some other projects
   - "low": specific to this project
   - "exclude": nothing worth keeping
3. tags: 3-5 short tags (technologies, type of work)
4. title: a concise title (at most 20 characters)
5. formatted_content: rewrite the knowledge so it stands on its own:
   replace pronouns and vague references with concrete nouns and add the
   premise or background needed to understand it.

If the message contains several independent pieces of knowledge, return a
JSON array with one object per piece. Otherwise return a single object:

{{
  "category": "implementation-knowhow",
  "versatility": "high",
  "title": "...",
  "tags": ["...", "..."],
  "formatted_content": "..."
}}"""


def build_analysis_prompt(message: ChatMessage) -> str:
    return ANALYSIS_PROMPT.format(
        speaker=message.speaker_name,
        date=message.sent_datetime.isoformat(),
        body=message.body,
    )
