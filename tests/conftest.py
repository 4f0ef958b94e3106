"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

VPC_SUBNET_TF = """
resource "aws_vpc" "main" {
  cidr_block = "10.0.0.0/16"

  tags = {
    Name = "main-vpc"
  }
}

resource "aws_subnet" "public" {
  vpc_id                  = aws_vpc.main.id
  cidr_block              = "10.0.1.0/24"
  availability_zone       = "us-east-1a"
  map_public_ip_on_launch = true

  tags = {
    Name = "public-subnet"
  }
}
"""

WEB_STACK_TF = """
resource "aws_vpc" "main" {
  cidr_block = "10.0.0.0/16"
}

resource "aws_subnet" "app" {
  vpc_id     = aws_vpc.main.id
  cidr_block = "10.0.2.0/24"
}

resource "aws_security_group" "web" {
  name        = "web-sg"
  description = "Web traffic"
  vpc_id      = aws_vpc.main.id
}

resource "aws_instance" "web" {
  ami                    = "ami-0abc"
  instance_type          = "t3.small"
  subnet_id              = aws_subnet.app.id
  vpc_security_group_ids = [aws_security_group.web.id]

  tags = {
    Name = "web-server"
  }
}

resource "aws_s3_bucket" "assets" {
  bucket = "my-assets"
}

resource "aws_lambda_function" "worker" {
  function_name = "worker"
  runtime       = "python3.12"
  handler       = "app.handler"
  environment {
    variables = {
      BUCKET = aws_s3_bucket.assets.id
    }
  }
}
"""


@pytest.fixture
def write_tf(tmp_path):
    """Return a helper writing a Terraform file under tmp_path."""

    def _write(relative: str, content: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def vpc_subnet_tf() -> str:
    """Return Terraform source declaring a VPC and a subnet inside it."""
    return VPC_SUBNET_TF


@pytest.fixture
def vpc_subnet_file(write_tf) -> Path:
    """Return a main.tf declaring a VPC and a subnet inside it."""
    return write_tf("infra/main.tf", VPC_SUBNET_TF)


@pytest.fixture
def web_stack_file(write_tf) -> Path:
    """Return a main.tf declaring a small web stack."""
    return write_tf("stack/main.tf", WEB_STACK_TF)
