"""
Tests for AWS resource naming and IAM policy documents.
"""

import json

from appdeck.upstream.upaws import (
    PolicyDocument,
    PolicyStatement,
    invoke_policy_document,
    lambda_name,
    manifest_key,
    static_key,
)
from appdeck.upstream.upaws.names import app_version_key, statement_sid
from appdeck.upstream.upaws.policy import initial_invoke_policy_document

# =============================================================================
# Naming Tests
# =============================================================================


class TestNames:
    """Tests for deterministic resource names."""

    def test_lambda_name(self):
        assert lambda_name("hello", "v1.0.0", "hello") == "hello_v1-0-0_hello"

    def test_lambda_name_is_deterministic(self):
        assert lambda_name("a", "b", "c") == lambda_name("a", "b", "c")

    def test_long_lambda_name_is_truncated_with_hash(self):
        long_id = "com.example." + "x" * 80

        name_a = lambda_name(long_id, "v1", "fn-a")
        name_b = lambda_name(long_id, "v1", "fn-b")

        assert len(name_a) == 64
        assert name_a != name_b
        assert all(c.isalnum() or c in "_-" for c in name_a)

    def test_app_version_key(self):
        assert app_version_key("hello", "v1.0.0") == "hello_v1-0-0"

    def test_static_key(self):
        assert static_key("hello", "v1.0.0", "/img/logo.png") == "static/hello_v1-0-0/img/logo.png"

    def test_manifest_key(self):
        assert manifest_key("hello", "v1.0.0") == "manifests/hello_v1-0-0.json"

    def test_statement_sid_is_alphanumeric_and_stable(self):
        sid = statement_sid("Invoke", "arn:aws:lambda:us-east-1:1:function:x")

        assert sid.isalnum()
        assert sid == statement_sid("Invoke", "arn:aws:lambda:us-east-1:1:function:x")
        assert sid != statement_sid("Invoke", "arn:aws:lambda:us-east-1:1:function:y")


# =============================================================================
# Policy Tests
# =============================================================================


class TestInvokePolicyDocument:
    """Tests for invoke policy statements."""

    def test_one_statement_per_function_plus_static(self):
        arns = ["arn:fn:a", "arn:fn:b", "arn:fn:c"]

        doc = invoke_policy_document(arns, "apps-bucket", "hello", "v1.0.0")

        assert len(doc.statements) == 4
        invoke = [s for s in doc.statements if s.actions == ("lambda:InvokeFunction",)]
        assert [s.resources for s in invoke] == [("arn:fn:a",), ("arn:fn:b",), ("arn:fn:c",)]

    def test_static_statement(self):
        doc = invoke_policy_document([], "apps-bucket", "hello", "v1.0.0")

        (static,) = doc.statements
        assert static.actions == ("s3:GetObject",)
        assert static.resources == ("arn:aws:s3:::apps-bucket/static/hello_v1-0-0/*",)

    def test_to_json(self):
        doc = invoke_policy_document(["arn:fn:a"], "apps-bucket", "hello", "v1")

        data = json.loads(doc.to_json())

        assert data["Version"] == "2012-10-17"
        assert data["Statement"][0]["Action"] == ["lambda:InvokeFunction"]
        assert data["Statement"][0]["Effect"] == "Allow"

    def test_initial_document(self):
        doc = initial_invoke_policy_document("apps-bucket")

        resources = [r for s in doc.statements for r in s.resources]
        assert resources == ["arn:aws:s3:::apps-bucket", "arn:aws:s3:::apps-bucket/manifests/*"]


class TestPolicyDocument:
    """Tests for parsing and merging policy documents."""

    def test_from_dict_accepts_string_fields(self):
        doc = PolicyDocument.from_dict(
            {
                "Version": "2012-10-17",
                "Statement": {"Sid": "A", "Effect": "Allow", "Action": "s3:GetObject", "Resource": "*"},
            }
        )

        assert doc.statements == (PolicyStatement(sid="A", actions=("s3:GetObject",), resources=("*",)),)

    def test_roundtrip(self):
        doc = invoke_policy_document(["arn:fn:a"], "b", "hello", "v1")

        assert PolicyDocument.from_dict(doc.to_dict()) == doc

    def test_merge_replaces_same_sid_in_place(self):
        old = PolicyStatement(sid="A", actions=("x",), resources=("1",))
        keep = PolicyStatement(sid="B", actions=("y",), resources=("2",))
        new = PolicyStatement(sid="A", actions=("x",), resources=("3",))

        merged = PolicyDocument((old, keep)).merge(PolicyDocument((new,)))

        assert merged.statements == (new, keep)

    def test_merge_appends_new_statements(self):
        a = PolicyStatement(sid="A", actions=("x",), resources=("1",))
        c = PolicyStatement(sid="C", actions=("z",), resources=("3",))

        merged = PolicyDocument((a,)).merge(PolicyDocument((c,)))

        assert merged.statements == (a, c)

    def test_merge_same_document_is_unchanged(self):
        doc = invoke_policy_document(["arn:fn:a"], "b", "hello", "v1")

        assert doc.merge(doc) == doc

    def test_redeploy_does_not_duplicate(self):
        base = initial_invoke_policy_document("b")
        app = invoke_policy_document(["arn:fn:a"], "b", "hello", "v1")

        once = base.merge(app)
        twice = once.merge(app)

        assert twice == once
        assert len(twice.statements) == 4
