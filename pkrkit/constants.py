"""
Constants for the pkrkit image build and cleanup tools.

This module defines all magic strings and numbers used across the codebase
to prevent typos, ensure consistency, and make maintenance easier.
"""

# =============================================================================
# Cloud Providers
# =============================================================================

PROVIDER_AWS = "aws"
PROVIDER_GCP = "gcp"
PROVIDER_AZURE = "azure"

ALL_PROVIDERS = (PROVIDER_AWS, PROVIDER_GCP, PROVIDER_AZURE)

PLATFORM_ALL = "all"
VALID_PLATFORMS = ALL_PROVIDERS + (PLATFORM_ALL,)

# =============================================================================
# Packer
# =============================================================================

PACKER_BINARY = "packer"
DEFAULT_TEMPLATE = "main.pkr.hcl"
DEFAULT_VARS_FILE = "variables.auto.pkrvars.hcl"
EXAMPLE_VARS_FILE = "variables.pkrvars.hcl.example"
PACKER_DOWNLOAD_URL = "https://www.packer.io/downloads"

# Source names in main.pkr.hcl, passed to `packer build -only=...`
PACKER_SOURCES = {
    PROVIDER_AWS: "amazon-ebs.aws",
    PROVIDER_GCP: "googlecompute.gcp",
    PROVIDER_AZURE: "azure-arm.azure",
}

# Variables in main.pkr.hcl
VAR_IMAGE_NAME = "image_name"
VAR_IMAGE_VERSION = "image_version"

# =============================================================================
# Cleanup Defaults
# =============================================================================

DEFAULT_IMAGE_PREFIX = "poc-nginx-image"

# Packer tags its temporary EC2 instances with Name=Packer Builder
DEFAULT_BUILDER_TAG_KEY = "Name"
DEFAULT_BUILDER_TAG_VALUE = "Packer Builder"

# Name prefixes Packer gives to the temporary artifacts it creates
AWS_BUILDER_ARTIFACT_PREFIX = "packer_"
GCP_BUILDER_INSTANCE_PREFIX = "packer-"
AZURE_BUILDER_VM_PREFIX = "pkrvm"

# Designated tag whose value is matched against the prefix
NAME_TAG_KEY = "Name"

AWS_LIVE_INSTANCE_STATES = ["pending", "running", "stopping", "stopped"]
AWS_EMERGENCY_INSTANCE_STATES = ["pending", "running"]
GCP_EMERGENCY_INSTANCE_STATES = {"PROVISIONING", "STAGING", "RUNNING"}
AZURE_EMERGENCY_POWER_STATES = {"PowerState/starting", "PowerState/running"}

DEFAULT_AWS_REGION = "us-east-1"

# =============================================================================
# Versioning
# =============================================================================

IMAGE_NAME_TEMPLATE = "{name}-{provider}-v{version}"
# GCE image names allow only [a-z0-9-]; main.pkr.hcl writes 1.0.0 as 1-0-0
DASHED_VERSION_PROVIDERS = {"gcp"}
MAX_VERSION_BUMPS = 100

# =============================================================================
# Retry Defaults
# =============================================================================

DEFAULT_RETRY_ATTEMPTS = 3
