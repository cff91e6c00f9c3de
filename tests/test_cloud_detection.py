from backend.app.analysis.cloud_detection import (
    apply_detected_providers,
    detect_content_providers,
    detect_providers,
    hybrid_cloud_model,
)


def test_component_patterns_detect_aws():
    components = [{"name": "Orders table", "type": "database", "cloudService": "DynamoDB"}]
    assert detect_providers(components) == ["aws"]


def test_terraform_provider_block_detected_from_content():
    content = 'provider "azurerm" {\n  features {}\n}\nresource "azurerm_resource_group" "rg" {}'
    assert "azure" in detect_content_providers(content)


def test_image_content_is_ignored():
    assert detect_providers([], "apiVersion: v1\nkind: Pod", file_type="image") == []
    assert detect_providers([], "apiVersion: v1\nkind: Pod", file_type="iac") == ["kubernetes"]


def test_hybrid_cloud_model():
    assert hybrid_cloud_model(["aws", "gcp"]) == "multi-cloud"
    assert hybrid_cloud_model(["kubernetes"]) == "hybrid-cloud"
    assert hybrid_cloud_model(["aws"]) == "single-cloud"


def test_detection_overrides_model_metadata():
    metadata = {"cloudProviders": ["on-premises"], "architectureType": "serverless"}
    components = [{"name": "API", "cloudService": "AWS Lambda"}]
    result = apply_detected_providers(metadata, components, "", "image")
    assert result["cloudProviders"] == ["aws"]
    assert result["primaryCloudProvider"] == "aws"
    assert result["hybridCloudModel"] == "single-cloud"
    assert result["architectureType"] == "serverless"


def test_metadata_kept_when_nothing_detected():
    metadata = {"cloudProviders": ["on-premises"]}
    assert apply_detected_providers(metadata, [{"name": "Mainframe"}], "", "image") == metadata
