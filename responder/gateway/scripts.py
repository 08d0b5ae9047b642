"""
Reply Scripts

Reply text per auto-eligible template. Each script takes the classifier's
extracted vars and flags and returns plain text; the Reachinbox client
turns it into HTML.
"""

from typing import Callable, Dict, Mapping, Optional

from ..engine.catalog import Template

FEE_TERMS = "a flat 10% of first-year base salary with a 6-month replacement guarantee"
SHORT_TERMS = "10% with a 6-month guarantee"

Vars = Mapping[str, str]
Flags = Mapping[str, bool]
Script = Callable[[Vars, Flags], str]


def _position(role: str) -> str:
    return role if "position" in role else f"{role} position"


def _interested(v: Vars, f: Flags) -> str:
    role1 = v.get("role") or v.get("role1") or "this"
    role2 = v.get("role2")
    if not role2:
        role2 = f"{role1} {v['location']}" if v.get("location") else "similar positions"
    if role2 == role1:
        role2 = "similar positions"

    first = _position(role1) if role1 == "this" else f"the {_position(role1)}"
    second = role2 if role2 == "similar positions" else f"the {_position(role2)}"
    return (
        "Great, happy to get those over to you.\n\n"
        f"Just so you have everything upfront: we work at {FEE_TERMS}.\n\n"
        f"Before I send the agreement, is this for {first} or {second}?"
    )


def _yes_send(v: Vars, f: Flags) -> str:
    return (
        "Perfect, here's everything upfront so expectations are clear:\n\n"
        f"We work at {SHORT_TERMS}.\n\n"
        "I'm sending the agreement to this email for e-signature now."
    )


def _ask_agreement(v: Vars, f: Flags) -> str:
    return (
        "Absolutely, I can send that over.\n\n"
        "I'll send the agreement to this email for e-signature. If anyone else (HR, hiring manager, "
        "co-founder) should be included, reply and I'll loop them in."
    )


def _ask_fees_only(v: Vars, f: Flags) -> str:
    return (
        "Great question. We only charge if you hire someone we present.\n\n"
        f"It's {FEE_TERMS}, and there are no upfront fees.\n\n"
        "Would you like me to send the agreement?"
    )


def _fees_question(v: Vars, f: Flags) -> str:
    role = v.get("role") or v.get("role1")
    confirm = f"\n\nJust to confirm, is this for the {_position(role)}?" if role else ""
    return (
        "Great question. We only charge if you hire someone we present.\n\n"
        f"It's a simple 10% contingency model with a 6-month replacement guarantee.\n\n"
        f"No upfront fees.{confirm}\n\n"
        "Would you like me to send the agreement?"
    )


def _not_interested(v: Vars, f: Flags) -> str:
    base = "Totally understand, and I appreciate the quick response."
    if f.get("unsubscribe"):
        return f"{base}\n\nThanks for letting me know. I won't reach out again."
    return (
        f"{base}\n\n"
        f"If hiring needs shift or a tough role comes up, we're here to help at {SHORT_TERMS}.\n\n"
        "Would you like me to send the agreement so you have it on file for future roles?"
    )


def _not_hiring(v: Vars, f: Flags) -> str:
    return (
        "Understood, thanks for letting me know.\n\n"
        f"When a role does open up, we work at {SHORT_TERMS} and only charge if you hire.\n\n"
        "Happy to send the agreement so it's on file for later."
    )


def _no_job_post(v: Vars, f: Flags) -> str:
    role1 = v.get("role1") or "the role"
    role2 = v.get("role2") or "similar positions"
    return (
        "Thanks for the reply, sounds like we may have crossed wires.\n\n"
        "We're happy to send strong candidates for review, no pressure.\n\n"
        f"Our terms are {SHORT_TERMS}.\n\n"
        f"Based on companies your size, these roles seem most likely: {role1} and {role2}.\n\n"
        "Are those correct? If so, I can send the agreement over."
    )


def _role_unclear(v: Vars, f: Flags) -> str:
    role = v.get("role") or "this position"
    return (
        f"Thanks for the reply. Just to confirm, is this for the {_position(role)}?\n\n"
        f"We work at {SHORT_TERMS}, and we have strong candidates for roles like this.\n\n"
        "Would you like me to send the agreement?"
    )


def _asking_which_role(v: Vars, f: Flags) -> str:
    role1 = v.get("role1") or v.get("role") or "your open roles"
    role2 = v.get("role2")
    roles = f"{role1} and {role2}" if role2 else role1
    return (
        f"Good question. We were reaching out about {roles}.\n\n"
        f"We work at {SHORT_TERMS}.\n\n"
        "Which of those is most pressing for you?"
    )


def _role_clarification_multi(v: Vars, f: Flags) -> str:
    role1 = v.get("role1") or v.get("role") or "the first role"
    role2 = v.get("role2") or "the second role"
    return (
        f"Thanks. We can help with both {role1} and {role2}.\n\n"
        f"Same terms for either: {SHORT_TERMS}.\n\n"
        "Should I send the agreement covering both?"
    )


def _role_confirmed_followup(v: Vars, f: Flags) -> str:
    role = v.get("role") or v.get("role1")
    subject = f"the {_position(role)}" if role else "the role you confirmed"
    return (
        f"Thanks, noted on {subject}.\n\n"
        f"We're lining up candidates now. Terms are {SHORT_TERMS}.\n\n"
        "Want me to send the agreement so we can get resumes to you?"
    )


def _ask_website(v: Vars, f: Flags) -> str:
    return (
        "Of course. Our site has an overview of how we work and the roles we recruit for.\n\n"
        f"In short: {SHORT_TERMS}, and you only pay if you hire.\n\n"
        "Happy to send the agreement whenever you're ready."
    )


def _geo_concern(v: Vars, f: Flags) -> str:
    location = v.get("location")
    where = f" in {location}" if location else " in your area"
    return (
        f"Fair question. We recruit nationally and source candidates{where}, "
        "so location isn't a limitation.\n\n"
        f"Our terms are {SHORT_TERMS}.\n\n"
        "Would you like me to send the agreement?"
    )


def _link_to_apply(v: Vars, f: Flags) -> str:
    return (
        "Thanks for sharing this. Just to clarify, we're a recruiting partner that sources and "
        "vets candidates for our clients.\n\n"
        "We can't use an external apply link unless we have an agreement in place.\n\n"
        f"Our terms are {SHORT_TERMS}.\n\n"
        "If it makes sense, I can send the agreement over."
    )


def _ask_company(v: Vars, f: Flags) -> str:
    return (
        "Good question. We're a US-based recruiting firm placing vetted candidates with growing teams.\n\n"
        f"We work at {SHORT_TERMS}.\n\n"
        "Would you like me to send the agreement?"
    )


def _ask_experience(v: Vars, f: Flags) -> str:
    role = v.get("role")
    about = f" for {role}" if role else ""
    return (
        f"The candidates we have{about} are experienced and pre-screened for the role.\n\n"
        "Once the agreement is in place I'll send profiles over so you can judge for yourself.\n\n"
        f"Terms are {SHORT_TERMS}. Shall I send it?"
    )


def _ask_salary(v: Vars, f: Flags) -> str:
    return (
        "Salary expectations vary by candidate; I'll include each one's range with their profile.\n\n"
        f"Our fee is {SHORT_TERMS}.\n\n"
        "Would you like me to send the agreement?"
    )


def _ask_source(v: Vars, f: Flags) -> str:
    return (
        "We came across your company while researching teams that are growing in your space.\n\n"
        f"We work at {SHORT_TERMS}.\n\n"
        "Would it help if I sent the agreement over?"
    )


def _forward_to_team(v: Vars, f: Flags) -> str:
    return (
        "Thanks for passing this along, much appreciated.\n\n"
        f"For whoever picks it up: we work at {SHORT_TERMS}.\n\n"
        "I'm happy to send the agreement to anyone on your team."
    )


def _check_with_hr(v: Vars, f: Flags) -> str:
    return (
        "Sounds good, take your time checking with HR.\n\n"
        f"For reference, our terms are {SHORT_TERMS}.\n\n"
        "I can send the agreement so they have everything in one place."
    )


def _confused_message(v: Vars, f: Flags) -> str:
    return (
        "Sorry for any confusion. We're a recruiting firm and reached out because we have "
        "candidates who may fit your open roles.\n\n"
        f"We work at {SHORT_TERMS}.\n\n"
        "Would you like me to send the agreement?"
    )


def _thank_you(v: Vars, f: Flags) -> str:
    return (
        "You're welcome!\n\n"
        f"Whenever you're ready, we work at {SHORT_TERMS}.\n\n"
        "Just say the word and I'll send the agreement."
    )


def _single_question_mark(v: Vars, f: Flags) -> str:
    return (
        "Happy to clarify. We're a recruiting firm with vetted candidates for roles like yours.\n\n"
        f"We work at {SHORT_TERMS}.\n\n"
        "Would you like me to send the agreement?"
    )


def _hybrid_work(v: Vars, f: Flags) -> str:
    return (
        "Yes, we place candidates for on-site, hybrid and remote roles.\n\n"
        f"Our terms are {SHORT_TERMS}.\n\n"
        "Would you like me to send the agreement?"
    )


def _pdf_format(v: Vars, f: Flags) -> str:
    return (
        "Sure, the agreement comes as a PDF you can review and e-sign.\n\n"
        f"Terms are {SHORT_TERMS}.\n\n"
        "Should I send it to this email?"
    )


def _will_forward(v: Vars, f: Flags) -> str:
    return (
        "Thanks, I appreciate you forwarding it.\n\n"
        f"If it's useful, our terms are {SHORT_TERMS}.\n\n"
        "I'm happy to send the agreement directly to whoever handles hiring."
    )


def _too_expensive(v: Vars, f: Flags) -> str:
    role = v.get("role") or "these roles"
    return (
        "Totally understand. Most agencies charge 15-25%, but we keep it simple at 10% "
        "with a 6-month guarantee.\n\n"
        f"Roles like {role} need deeper vetting, and we focus on candidates who are ready to "
        "contribute immediately.\n\n"
        "If you'd like, I can send the agreement so you can review everything."
    )


def _percent_too_high(v: Vars, f: Flags) -> str:
    return (
        "Totally understand. Here's why we stay at 10%:\n\n"
        "Most agencies charge 15-25%\n"
        "We send vetted candidates, not volume\n"
        "You get a US-based recruiting team\n"
        "It includes a 6-month replacement guarantee\n\n"
        "If you're open to it, I can send the agreement so you can review everything."
    )


def _already_have_agency(v: Vars, f: Flags) -> str:
    return (
        "Totally understand, it's always good to have trusted partners.\n\n"
        "Many clients use us alongside their current agency because we move quickly, stay at 10%, "
        "and include a 6-month guarantee.\n\n"
        "Open to giving us a shot? If so, I can send the agreement."
    )


SCRIPTS: Dict[str, Script] = {
    Template.YES_SEND: _yes_send,
    Template.ASK_AGREEMENT: _ask_agreement,
    Template.ASK_FEES_ONLY: _ask_fees_only,
    Template.INTERESTED: _interested,
    Template.NOT_INTERESTED: _not_interested,
    Template.NOT_HIRING: _not_hiring,
    Template.NO_JOB_POST: _no_job_post,
    Template.ROLE_UNCLEAR: _role_unclear,
    Template.ASKING_WHICH_ROLE: _asking_which_role,
    Template.ROLE_CONFIRMED_FOLLOWUP: _role_confirmed_followup,
    Template.FEES_QUESTION: _fees_question,
    Template.ASK_WEBSITE: _ask_website,
    Template.ROLE_CLARIFICATION_MULTI: _role_clarification_multi,
    Template.GEO_CONCERN: _geo_concern,
    Template.LINK_TO_APPLY: _link_to_apply,
    Template.ASK_COMPANY: _ask_company,
    Template.ASK_EXPERIENCE: _ask_experience,
    Template.ASK_SALARY: _ask_salary,
    Template.ASK_SOURCE: _ask_source,
    Template.FORWARD_TO_TEAM: _forward_to_team,
    Template.CHECK_WITH_HR: _check_with_hr,
    Template.CONFUSED_MESSAGE: _confused_message,
    Template.THANK_YOU: _thank_you,
    Template.SINGLE_QUESTION_MARK: _single_question_mark,
    Template.HYBRID_WORK: _hybrid_work,
    Template.PDF_FORMAT: _pdf_format,
    Template.WILL_FORWARD: _will_forward,
    Template.TOO_EXPENSIVE: _too_expensive,
    Template.PERCENT_TOO_HIGH: _percent_too_high,
    Template.ALREADY_HAVE_AGENCY: _already_have_agency,
}


def render_reply(
    template_id: str,
    vars: Optional[Vars] = None,
    flags: Optional[Flags] = None,
) -> str:
    """
    Render the reply text for a template.

    Raises:
        KeyError: If the template has no script
    """
    script = SCRIPTS.get(template_id)
    if script is None:
        raise KeyError(f"Unknown template_id: {template_id}")
    return script(vars or {}, flags or {})


def follow_up_text() -> str:
    """Sent right after the agreement goes out"""
    return (
        "I just sent the agreement over for e-signature; it should be in your inbox now.\n\n"
        "Once it's signed I'll start sending candidate profiles your way. "
        "Let me know if anything in it needs adjusting."
    )
