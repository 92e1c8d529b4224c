"""Image reference parsing."""


def parse_reference(reference: str) -> tuple[str, str]:
    """이미지 참조 문자열을 저장소와 태그 구성요소로 파싱합니다.

    Args:
        reference: 이미지 참조 문자열
            - 예: "nginx:alpine", "localhost:5000/myapp:latest"
            - digest 포함: "alpine@sha256:abc123..."

    Returns:
        tuple[str, str]: (저장소, 태그) 튜플. digest 참조의 경우 태그 자리에 digest

    Examples:
        # 기본 이미지 태그 파싱
        repo, tag = parse_reference("nginx:alpine")
        # 결과: ("nginx", "alpine")

        # 레지스트리 포함 참조 파싱
        repo, tag = parse_reference("localhost:5000/myapp")
        # 결과: ("localhost:5000/myapp", "latest")

        # digest 참조 파싱
        repo, tag = parse_reference("alpine@sha256:abc")
        # 결과: ("alpine", "sha256:abc")
    """
    if "@" in reference:
        repository, digest = reference.split("@", 1)
        return repository, digest

    # Only a ':' after the last '/' separates a tag; earlier ones are registry ports
    slash = reference.rfind("/")
    colon = reference.rfind(":")
    if colon > slash:
        repository, tag = reference[:colon], reference[colon + 1 :]
        return repository, tag or "latest"

    return reference, "latest"
