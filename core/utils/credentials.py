"""
서명키 형식 검사

구문 검사만 수행 (접두사 + 최소 길이). 암호학적 검증 아님.
"""

from core.constants import SigningKeyFormat


def is_valid_signing_secret(secret: str | None) -> bool:
    """Blurt 개인키 형식 검사

    Args:
        secret: 사용자가 입력한 서명키

    Returns:
        True: 허용된 접두사로 시작하고 최소 길이 이상
    """
    if not secret:
        return False

    return (
        secret.startswith(SigningKeyFormat.VALID_PREFIXES)
        and len(secret) >= SigningKeyFormat.MIN_LENGTH
    )


def mask_secret(secret: str | None) -> str:
    """로그용 마스킹 (앞 2자만 노출)"""
    if not secret:
        return ""
    return f"{secret[:2]}***"
