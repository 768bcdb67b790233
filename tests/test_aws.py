"""Tests for AWS CloudFront, ACM and their provisioners."""

from unittest.mock import patch, MagicMock
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from cloudctl.aws import (
    CertificateManager,
    CertificateProvisioner,
    CloudFront,
    DistributionProvisioner,
    InvalidationProvisioner,
)
from cloudctl.aws.cdn import CACHE_POLICY_IDS, build_distribution_config
from cloudctl.base.config import AWSProfile
from cloudctl.base.exceptions import ClassifiedError, ErrorCategory
from cloudctl.batch.plan import (
    CertificateEntry,
    DistributionEntry,
    InvalidationEntry,
    ItemSpec,
)


PROFILE = AWSProfile(access_key_id="key", secret_access_key="secret", region="eu-west-1")


def _client_error(code: str, msg: str = "error") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": msg}}, "op")


def _entry(**overrides) -> DistributionEntry:
    data = {
        "name": "web",
        "aliases": ["www.example.com"],
        "certificate_arn": "arn:aws:acm:us-east-1:123:certificate/abc",
        "origin": {"domain": "origin.example.com"},
        "behaviors": [
            {
                "priority": 2,
                "path_pattern": "/api/*",
                "viewer_protocol_policy": "https-only",
                "cache_policy": "Managed-CachingDisabled",
                "origin_request_policy": "Managed-AllViewer",
                "response_headers_policy": "custom-policy-id",
            },
            {
                "priority": 1,
                "path_pattern": "*",
                "viewer_protocol_policy": "redirect-to-https",
                "cache_policy": "Managed-CachingOptimized",
                "origin_request_policy": "Managed-AllViewer",
                "response_headers_policy": "Managed-SimpleCORS",
            },
        ],
    }
    data.update(overrides)
    return DistributionEntry(**data)


@pytest.fixture
def cdn():
    with patch("cloudctl.aws.client.boto3") as mock_boto:
        mock_client = MagicMock()
        mock_boto.client.return_value = mock_client
        yield CloudFront(PROFILE), mock_client, mock_boto


@pytest.fixture
def acm():
    with patch("cloudctl.aws.client.boto3") as mock_boto:
        mock_client = MagicMock()
        mock_boto.client.return_value = mock_client
        sleep = MagicMock()
        yield CertificateManager(PROFILE, sleep=sleep), mock_client, sleep


# --- client construction and error translation ---

class TestClient:
    def test_pinned_to_global_region(self, cdn):
        _, _, mock_boto = cdn
        mock_boto.client.assert_called_once_with(
            "cloudfront",
            aws_access_key_id="key",
            aws_secret_access_key="secret",
            region_name="us-east-1",
        )

    @pytest.mark.parametrize("code, msg, category", [
        ("NoSuchDistribution", "The specified distribution does not exist.", ErrorCategory.NOT_FOUND),
        ("AccessDenied", "Access Denied", ErrorCategory.PERMISSION),
        ("Throttling", "Too many requests", ErrorCategory.RATE_LIMIT),
        ("InvalidArgument", "The parameter is invalid", ErrorCategory.VALIDATION),
    ])
    def test_client_errors_classified(self, cdn, code, msg, category):
        inst, client, _ = cdn
        client.get_distribution.side_effect = _client_error(code, msg)
        with pytest.raises(ClassifiedError) as exc:
            inst.get_distribution("E1")
        assert exc.value.category is category
        assert exc.value.operation == "get distribution E1"
        assert isinstance(exc.value.cause, ClientError)

    def test_connection_error(self, cdn):
        inst, client, _ = cdn
        client.get_distribution.side_effect = EndpointConnectionError(endpoint_url="https://cloudfront")
        with pytest.raises(ClassifiedError) as exc:
            inst.get_distribution("E1")
        assert exc.value.category is ErrorCategory.NETWORK


# --- CloudFront ---

class TestDistributions:
    def test_list(self, cdn):
        inst, client, _ = cdn
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"DistributionList": {"Items": [{
                "Id": "E1",
                "DomainName": "d1.cloudfront.net",
                "Status": "Deployed",
                "Enabled": True,
                "Aliases": {"Items": ["www.example.com"]},
                "Origins": {"Items": [{"Id": "o", "DomainName": "origin.example.com"}]},
            }]}},
            {"DistributionList": {}},
        ]
        client.get_paginator.return_value = paginator
        dists = inst.list_distributions()
        assert len(dists) == 1
        assert dists[0]["id"] == "E1"
        assert dists[0]["aliases"] == ["www.example.com"]
        assert dists[0]["origins"][0]["domain_name"] == "origin.example.com"

    def test_get(self, cdn):
        inst, client, _ = cdn
        client.get_distribution.return_value = {"Distribution": {
            "Id": "E1",
            "DomainName": "d1.cloudfront.net",
            "Status": "InProgress",
            "DistributionConfig": {"Enabled": True, "Comment": "web"},
        }}
        dist = inst.get_distribution("E1")
        assert dist["id"] == "E1"
        assert dist["comment"] == "web"
        assert dist["enabled"] is True

    def test_create(self, cdn):
        inst, client, _ = cdn
        client.create_distribution.return_value = {"Distribution": {
            "Id": "E9", "ARN": "arn:cf:E9", "DomainName": "d9.cloudfront.net", "Status": "InProgress",
        }}
        result = inst.create_distribution(_entry(), caller_reference="ref1")
        assert result["id"] == "E9"
        assert result["caller_reference"] == "ref1"
        config = client.create_distribution.call_args.kwargs["DistributionConfig"]
        assert config["CallerReference"] == "ref1"
        client.tag_resource.assert_called_once_with(
            Resource="arn:cf:E9", Tags={"Items": [{"Key": "Name", "Value": "web"}]}
        )

    def test_create_tag_failure_ignored(self, cdn):
        inst, client, _ = cdn
        client.create_distribution.return_value = {"Distribution": {"Id": "E9", "ARN": "arn:cf:E9"}}
        client.tag_resource.side_effect = _client_error("AccessDenied", "Access Denied")
        assert inst.create_distribution(_entry(), caller_reference="ref1")["id"] == "E9"

    def test_create_conflict(self, cdn):
        inst, client, _ = cdn
        client.create_distribution.side_effect = _client_error(
            "CNAMEAlreadyExists", "One or more aliases already exists"
        )
        with pytest.raises(ClassifiedError) as exc:
            inst.create_distribution(_entry(), caller_reference="ref1")
        assert exc.value.category is ErrorCategory.CONFLICT

    def test_create_origin_distribution(self, cdn):
        inst, client, _ = cdn
        client.create_distribution.return_value = {"Distribution": {
            "Id": "E7", "ARN": "arn:cf:E7", "DomainName": "d7.cloudfront.net", "Status": "InProgress",
            "DistributionConfig": {"Enabled": True, "Comment": "site"},
        }}
        result = inst.create_origin_distribution(
            "origin.example.com",
            aliases=["cdn.example.com"],
            comment="site",
            certificate_arn="arn:acm:1",
            caller_reference="ref7",
        )
        assert result["id"] == "E7"
        assert result["arn"] == "arn:cf:E7"
        assert result["caller_reference"] == "ref7"
        config = client.create_distribution.call_args.kwargs["DistributionConfig"]
        assert config["PriceClass"] == "PriceClass_100"
        assert config["Origins"]["Items"][0]["DomainName"] == "origin.example.com"
        assert config["Origins"]["Items"][0]["CustomOriginConfig"]["OriginProtocolPolicy"] == "https-only"
        assert config["ViewerCertificate"]["ACMCertificateArn"] == "arn:acm:1"
        client.tag_resource.assert_not_called()

    def test_create_origin_distribution_default_certificate(self, cdn):
        inst, client, _ = cdn
        client.create_distribution.return_value = {"Distribution": {"Id": "E7"}}
        inst.create_origin_distribution("origin.example.com")
        config = client.create_distribution.call_args.kwargs["DistributionConfig"]
        assert config["ViewerCertificate"] == {"CloudFrontDefaultCertificate": True}
        assert config["Aliases"] == {"Quantity": 0, "Items": []}
        assert config["CallerReference"].startswith("cloudctl-")

    def test_create_origin_distribution_aliases_need_certificate(self, cdn):
        inst, client, _ = cdn
        with pytest.raises(ClassifiedError, match="certificate") as exc:
            inst.create_origin_distribution("origin.example.com", aliases=["cdn.example.com"])
        assert exc.value.category is ErrorCategory.VALIDATION
        client.create_distribution.assert_not_called()

    def test_update_uses_etag(self, cdn):
        inst, client, _ = cdn
        client.get_distribution_config.return_value = {
            "DistributionConfig": {"Comment": "old", "Enabled": True, "CallerReference": "r"},
            "ETag": "ETAG1",
        }
        client.update_distribution.return_value = {"Distribution": {
            "Id": "E1", "DistributionConfig": {"Comment": "new", "Enabled": False},
        }}
        dist = inst.update_distribution("E1", comment="new", enabled=False)
        assert dist["comment"] == "new"
        assert dist["enabled"] is False
        kwargs = client.update_distribution.call_args.kwargs
        assert kwargs["Id"] == "E1"
        assert kwargs["IfMatch"] == "ETAG1"
        assert kwargs["DistributionConfig"] == {"Comment": "new", "Enabled": False, "CallerReference": "r"}

    def test_update_nothing(self, cdn):
        inst, client, _ = cdn
        with pytest.raises(ClassifiedError, match="nothing to update") as exc:
            inst.update_distribution("E1")
        assert exc.value.category is ErrorCategory.VALIDATION
        client.get_distribution_config.assert_not_called()

    def test_update_stale_etag(self, cdn):
        inst, client, _ = cdn
        client.get_distribution_config.return_value = {"DistributionConfig": {}, "ETag": "E"}
        client.update_distribution.side_effect = _client_error("PreconditionFailed", "precondition failed")
        with pytest.raises(ClassifiedError) as exc:
            inst.update_distribution("E1", enabled=True)
        assert exc.value.operation == "update distribution E1"


class TestBuildDistributionConfig:
    def test_default_and_ordered_behaviors(self):
        config = build_distribution_config(_entry(), "ref")
        default = config["DefaultCacheBehavior"]
        assert default["ViewerProtocolPolicy"] == "redirect-to-https"
        assert default["CachePolicyId"] == CACHE_POLICY_IDS["Managed-CachingOptimized"]
        assert default["TargetOriginId"] == "web-origin"
        extra = config["CacheBehaviors"]
        assert extra["Quantity"] == 1
        assert extra["Items"][0]["PathPattern"] == "/api/*"
        assert extra["Items"][0]["ResponseHeadersPolicyId"] == "custom-policy-id"
        assert config["ViewerCertificate"]["SSLSupportMethod"] == "sni-only"
        assert "WebACLId" not in config

    def test_waf(self):
        config = build_distribution_config(_entry(waf_arn="arn:waf"), "ref")
        assert config["WebACLId"] == "arn:waf"


class TestInvalidations:
    def test_create(self, cdn):
        inst, client, _ = cdn
        client.create_invalidation.return_value = {"Invalidation": {"Id": "I1", "Status": "InProgress"}}
        result = inst.create_invalidation("E1", ["/a", "/b/*"], caller_reference="deploy-1")
        assert result["id"] == "I1"
        client.create_invalidation.assert_called_once_with(
            DistributionId="E1",
            InvalidationBatch={
                "CallerReference": "deploy-1",
                "Paths": {"Quantity": 2, "Items": ["/a", "/b/*"]},
            },
        )

    def test_generated_reference(self, cdn):
        inst, client, _ = cdn
        client.create_invalidation.return_value = {"Invalidation": {"Id": "I1"}}
        result = inst.create_invalidation("E1", ["/a"])
        assert result["caller_reference"].startswith("cloudctl-")

    @pytest.mark.parametrize("dist_id, paths", [("", ["/a"]), ("E1", [])])
    def test_validation(self, cdn, dist_id, paths):
        inst, client, _ = cdn
        with pytest.raises(ClassifiedError) as exc:
            inst.create_invalidation(dist_id, paths)
        assert exc.value.category is ErrorCategory.VALIDATION
        client.create_invalidation.assert_not_called()

    def test_get(self, cdn):
        inst, client, _ = cdn
        client.get_invalidation.return_value = {"Invalidation": {
            "Id": "I1",
            "Status": "Completed",
            "InvalidationBatch": {"CallerReference": "r", "Paths": {"Items": ["/a"]}},
        }}
        inv = inst.get_invalidation("E1", "I1")
        assert inv["status"] == "Completed"
        assert inv["paths"] == ["/a"]
        client.get_invalidation.assert_called_once_with(DistributionId="E1", Id="I1")

    def test_list(self, cdn):
        inst, client, _ = cdn
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"InvalidationList": {"Items": [{"Id": "I1", "Status": "Completed"}]}},
        ]
        client.get_paginator.return_value = paginator
        invs = inst.list_invalidations("E1")
        assert invs[0]["id"] == "I1"
        paginator.paginate.assert_called_once_with(DistributionId="E1")


# --- ACM ---

CERT = {
    "CertificateArn": "arn:cert:1",
    "DomainName": "example.com",
    "Status": "PENDING_VALIDATION",
    "DomainValidationOptions": [{
        "DomainName": "example.com",
        "ValidationStatus": "PENDING_VALIDATION",
        "ResourceRecord": {"Name": "_x.example.com.", "Type": "CNAME", "Value": "_y.acm.aws."},
    }],
}


class TestCertificates:
    def test_list(self, acm):
        inst, client, _ = acm
        paginator = MagicMock()
        paginator.paginate.return_value = [{"CertificateSummaryList": [
            {"CertificateArn": "arn:cert:1", "DomainName": "example.com", "Status": "ISSUED"},
        ]}]
        client.get_paginator.return_value = paginator
        certs = inst.list_certificates()
        assert certs[0]["arn"] == "arn:cert:1"
        assert certs[0]["status"] == "ISSUED"

    def test_get_includes_validation_records(self, acm):
        inst, client, _ = acm
        client.describe_certificate.return_value = {"Certificate": CERT}
        cert = inst.get_certificate("arn:cert:1")
        assert cert["validation_records"] == [{
            "domain": "example.com",
            "name": "_x.example.com.",
            "type": "CNAME",
            "value": "_y.acm.aws.",
            "status": "PENDING_VALIDATION",
        }]

    def test_request_waits_for_records(self, acm):
        inst, client, sleep = acm
        client.request_certificate.return_value = {"CertificateArn": "arn:cert:1"}
        client.describe_certificate.side_effect = [
            {"Certificate": {**CERT, "DomainValidationOptions": []}},
            {"Certificate": CERT},
        ]
        cert = inst.request_certificate(
            "example.com", ["www.example.com", "example.com"], idempotency_token="tok1"
        )
        assert cert["validation_records"][0]["name"] == "_x.example.com."
        assert sleep.call_count == 2
        client.request_certificate.assert_called_once_with(
            DomainName="example.com",
            SubjectAlternativeNames=["example.com", "www.example.com"],
            ValidationMethod="DNS",
            IdempotencyToken="tok1",
        )

    def test_request_gives_up_waiting(self, acm):
        inst, client, sleep = acm
        client.request_certificate.return_value = {"CertificateArn": "arn:cert:1"}
        client.describe_certificate.side_effect = _client_error("ResourceNotFoundException", "not found")
        cert = inst.request_certificate("example.com")
        assert cert["status"] == "PENDING_VALIDATION"
        assert cert["validation_records"] == []
        assert sleep.call_count == 5

    def test_request_without_wait(self, acm):
        inst, client, sleep = acm
        client.request_certificate.return_value = {"CertificateArn": "arn:cert:1"}
        cert = inst.request_certificate("example.com", wait_for_validation=False)
        assert cert["arn"] == "arn:cert:1"
        sleep.assert_not_called()
        client.describe_certificate.assert_not_called()
        assert "IdempotencyToken" not in client.request_certificate.call_args.kwargs

    def test_request_requires_domain(self, acm):
        inst, _, _ = acm
        with pytest.raises(ClassifiedError) as exc:
            inst.request_certificate("")
        assert exc.value.category is ErrorCategory.VALIDATION

    def test_wait_for_validation_records(self, acm):
        inst, client, sleep = acm
        client.describe_certificate.side_effect = [
            _client_error("ResourceNotFoundException", "not found"),
            {"Certificate": CERT},
        ]
        cert = inst.wait_for_validation_records("arn:cert:1")
        assert cert["validation_records"][0]["value"] == "_y.acm.aws."
        assert sleep.call_count == 2
        client.request_certificate.assert_not_called()

    def test_wait_for_validation_records_none(self, acm):
        inst, client, _ = acm
        client.describe_certificate.return_value = {"Certificate": {**CERT, "DomainValidationOptions": []}}
        assert inst.wait_for_validation_records("arn:cert:1") is None

    def test_validate_all_issued(self, acm):
        inst, client, _ = acm
        client.describe_certificate.return_value = {"Certificate": {**CERT, "Status": "ISSUED"}}
        inst.validate_certificates(["arn:cert:1", "arn:cert:2"])
        assert client.describe_certificate.call_count == 2

    def test_validate_not_issued(self, acm):
        inst, client, _ = acm
        client.describe_certificate.return_value = {"Certificate": CERT}
        with pytest.raises(ClassifiedError, match="expected ISSUED") as exc:
            inst.validate_certificates(["arn:cert:1"])
        assert exc.value.category is ErrorCategory.VALIDATION


# --- provisioners ---

class TestProvisioners:
    def test_certificate(self):
        acm = MagicMock()
        acm.request_certificate.return_value = {"arn": "arn:cert:7"}
        prov = CertificateProvisioner(acm)
        assert prov.requires_idempotency_token
        assert prov.resolve_group("certificates") == "certificates"
        entry = CertificateEntry(domain="example.com", san=["www.example.com"])
        arn = prov.create_item("certificates", ItemSpec("example.com", payload=entry), "tok")
        assert arn == "arn:cert:7"
        acm.request_certificate.assert_called_once_with(
            "example.com", ["www.example.com"], idempotency_token="tok", wait_for_validation=False
        )

    def test_distribution(self):
        cdn = MagicMock()
        cdn.create_distribution.return_value = {"id": "E5"}
        prov = DistributionProvisioner(cdn)
        entry = _entry()
        assert prov.create_item("distributions", ItemSpec("web", payload=entry), "tok") == "E5"
        cdn.create_distribution.assert_called_once_with(entry, caller_reference="tok")

    def test_invalidation(self):
        cdn = MagicMock()
        cdn.get_distribution.return_value = {"id": "E1"}
        cdn.create_invalidation.return_value = {"id": "I3"}
        prov = InvalidationProvisioner(cdn)
        assert prov.resolve_group("E1") == "E1"
        entry = InvalidationEntry(distribution_id="E1", paths=["/a"])
        assert prov.create_item("E1", ItemSpec("/a", payload=entry), "ref") == "I3"
        cdn.create_invalidation.assert_called_once_with("E1", ["/a"], caller_reference="ref")

    def test_invalidation_missing_distribution(self):
        cdn = MagicMock()
        cdn.get_distribution.side_effect = ClassifiedError(ErrorCategory.NOT_FOUND, "no such distribution")
        with pytest.raises(ClassifiedError):
            InvalidationProvisioner(cdn).resolve_group("E404")
