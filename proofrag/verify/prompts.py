"""Static prompt blocks for SVO protocol verification.

These are configuration, not request data: the notation, the axiom set
and the step-ordering instructions are identical for every request.
"""
import json
import textwrap

from pydantic import TypeAdapter

from proofrag.models import VerificationStep

ROLE_BLOCK = textwrap.dedent("""\
    You are a protocol verification expert using Syverson-van Oorschot (SVO) logic.
    Use the following formal notation and axioms to analyze the protocol diagram.""")

NOTATION_BLOCK = textwrap.dedent("""\
    SVO NOTATION:
    - P |≡ X : P believes X
    - P ⊲ X : P has jurisdiction over X
    - P ⊳ X : P receives X
    - P |~ X : P previously sent X
    - P |⇒ X : P has authority over X
    - #(X) : X is fresh
    - {X}K : X is encrypted with key K
    - ⟨X⟩P : X is public key of P
    - P ↔K Q : K is a secret key shared between P and Q
    - P ⟷ Q : Secret is shared between P and Q""")

AXIOM_BLOCK = textwrap.dedent("""\
    SVO AXIOMS:
    1. Belief Axioms (BA):
       - P |≡ φ ∧ P |≡ (φ ⊃ ψ) → P |≡ ψ
       - P |≡ φ → φ
    2. Source Association Axioms (SAA):
       - (P ⊳ X ∧ P ⊳ {X}K) → Q |~ X
       - (P ←K→ Q ∧ P ⊳ {X}SK) → P |≡ Q |~ X
    3. Receiving Axioms (RA):
       - P ⊳ (X1,...,Xn) → P ⊳ Xi
       - (P ⊳ {X}K ∧ P ⊲ K) → P ⊳ X
    4. Saying Axioms (SA):
       - #(X1) → #(X1,...,Xn)
       - #(X1,...,Xn) → #({X1,...,Xn})
    5. Jurisdiction Axiom (JR):
       - (P |≡ Q ⊲ X ∧ P |≡ Q |≡ X) → P |≡ X
    6. Nonce Verification Axiom (NV):
       - (#(X) ∧ P |≡ Q |~ X) → P |≡ Q |≡ X""")

STEP_ORDERING_BLOCK = textwrap.dedent("""\
    Generate verification steps in the following order. Phases may be
    omitted, but never go back to an earlier phase.

    1. Trust Assumptions (A steps): initial trust relationships, key
       possession and distribution, authority over specific claims.
    2. Goals (G steps): authentication, secrecy, agreement and fresh
       belief goals.
    3. Hypotheses (H steps): message reception events and observable
       protocol actions.
    4. Annotations (N steps): protocol-specific notes and context for
       interpretation.
    5. Comprehension (C steps): meaning of message components and
       cryptographic operations.
    6. Interpretation (P steps): beliefs derived from messages and trust
       chain establishment.
    7. Logical Derivations (D steps): application of SVO axioms toward
       the stated goals.""")

STEP_GUIDANCE_BLOCK = textwrap.dedent("""\
    For each step:
    - Use precise SVO notation
    - Cite the axioms used in "rules" (for example "BA1", "NV")
    - List the ids of earlier steps used in "dependencies"; never refer to a later step
    - Give clear reasoning in "reason"
    - Number ids per category starting at 1 (A1, A2, G1, ...)""")


def render_output_format() -> str:
    """Output format instructions rendered from the step schema."""
    schema = TypeAdapter(list[VerificationStep]).json_schema()
    return (
        "Respond with a single JSON array of step objects and nothing else, "
        "inside a ```json fenced code block. The array must conform to this "
        "JSON schema:\n"
        f"```json\n{json.dumps(schema, indent=2, ensure_ascii=False)}\n```"
    )


OUTPUT_FORMAT_BLOCK = render_output_format()
