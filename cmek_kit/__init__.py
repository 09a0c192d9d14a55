"""
cmek_kit
--------

NotebookLM Enterprise 의 CMEK(Customer-Managed Encryption Key) 사용을 위한
GCP 리소스 준비 CLI 패키지.
API enable, 서비스 에이전트, KMS 키링/키, 키 IAM 바인딩을 멱등하게 한 번에 준비한다.
"""

__all__ = [
    "config",
    "provisioner",
]
