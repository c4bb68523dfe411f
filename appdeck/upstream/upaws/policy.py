"""
IAM policy documents.

The invoke policy is shared by every App deployed to the account. Each
deploy contributes one least-privilege statement per Lambda function
and one statement for reading the App's static assets; statements have
deterministic Sids so a re-deploy replaces its own statements instead
of piling up duplicates.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .names import MANIFESTS_FOLDER, s3_arn, statement_sid, static_key_prefix

POLICY_VERSION = "2012-10-17"

# IAM keeps at most 5 versions of a managed policy
MAX_POLICY_VERSIONS = 5

LAMBDA_ASSUME_ROLE_POLICY = {
    "Version": POLICY_VERSION,
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"Service": "lambda.amazonaws.com"},
            "Action": "sts:AssumeRole",
        }
    ],
}


@dataclass(frozen=True, slots=True)
class PolicyStatement:
    """A single Allow/Deny statement."""

    sid: str
    actions: tuple[str, ...]
    resources: tuple[str, ...]
    effect: str = "Allow"

    def to_dict(self) -> dict[str, Any]:
        return {
            "Sid": self.sid,
            "Effect": self.effect,
            "Action": list(self.actions),
            "Resource": list(self.resources),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyStatement:
        def as_tuple(value: Any) -> tuple[str, ...]:
            if isinstance(value, str):
                return (value,)
            return tuple(value or ())

        return cls(
            sid=data.get("Sid", ""),
            effect=data.get("Effect", "Allow"),
            actions=as_tuple(data.get("Action")),
            resources=as_tuple(data.get("Resource")),
        )


@dataclass(frozen=True)
class PolicyDocument:
    """An IAM policy document."""

    statements: tuple[PolicyStatement, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "Version": POLICY_VERSION,
            "Statement": [s.to_dict() for s in self.statements],
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyDocument:
        statements = data.get("Statement", [])
        if isinstance(statements, dict):
            statements = [statements]
        return cls(tuple(PolicyStatement.from_dict(s) for s in statements))

    def merge(self, other: PolicyDocument) -> PolicyDocument:
        """
        Add the statements of `other`, replacing statements with the same Sid.

        Order is kept: replaced statements stay in place, new ones are
        appended.
        """
        incoming = {s.sid: s for s in other.statements if s.sid}
        merged = [incoming.pop(s.sid, s) if s.sid else s for s in self.statements]
        merged.extend(s for s in other.statements if not s.sid or s.sid in incoming)
        return PolicyDocument(tuple(merged))


def initial_invoke_policy_document(bucket: str) -> PolicyDocument:
    """Invoke policy created by init: list the bucket and read deployed manifests."""
    return PolicyDocument(
        (
            PolicyStatement(
                sid="AllowListBucket",
                actions=("s3:ListBucket",),
                resources=(s3_arn(bucket),),
            ),
            PolicyStatement(
                sid="AllowReadManifests",
                actions=("s3:GetObject",),
                resources=(s3_arn(bucket, f"{MANIFESTS_FOLDER}/*"),),
            ),
        )
    )


def invoke_policy_document(
    lambda_arns: Iterable[str],
    bucket: str,
    app_id: str,
    version: str,
) -> PolicyDocument:
    """
    Least-privilege invoke statements for one App version.

    One lambda:InvokeFunction statement per function ARN, plus
    s3:GetObject on the App's static asset prefix.
    """
    statements = [
        PolicyStatement(
            sid=statement_sid("Invoke", arn),
            actions=("lambda:InvokeFunction",),
            resources=(arn,),
        )
        for arn in lambda_arns
    ]
    static_resource = s3_arn(bucket, static_key_prefix(app_id, version) + "*")
    statements.append(
        PolicyStatement(
            sid=statement_sid("Static", static_resource),
            actions=("s3:GetObject",),
            resources=(static_resource,),
        )
    )
    return PolicyDocument(tuple(statements))
