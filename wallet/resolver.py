"""
사용자 식별자 해석

사람이 입력한 식별자(핸들 또는 표시 이름)를 Identity로 해석.

해석 순서 (첫 일치에서 중단, 각 단계는 첫 행만 사용):
1. 핸들 정확히 일치
2. 표시 이름 정확히 일치
3. 표시 이름 부분 일치
4. 핸들 부분 일치

자금 이동 호출은 exact_only=True로 1~2단계만 사용.
"""

import logging
from dataclasses import replace

from adapters.interfaces import IUserDirectory
from adapters.models import Identity
from core.constants import Defaults, Limits

logger = logging.getLogger(__name__)


def default_avatar_url(handle: str) -> str:
    """핸들로 시드한 기본 아바타 URL"""
    return Defaults.AVATAR_URL_TEMPLATE.format(seed=handle)


def with_avatar(identity: Identity) -> Identity:
    """아바타가 없으면 기본 아바타로 채움"""
    if identity.avatar_ref:
        return identity
    return replace(identity, avatar_ref=default_avatar_url(identity.handle))


class UserResolver:
    """사용자 식별자 해석기

    Args:
        directory: 사용자 디렉토리
        max_results: 검색 결과 최대 개수
        min_prefix_length: 검색 최소 입력 길이
    """

    def __init__(
        self,
        directory: IUserDirectory,
        max_results: int = Limits.SEARCH_RESULTS,
        min_prefix_length: int = Limits.SEARCH_MIN_LENGTH,
    ):
        self.directory = directory
        self.max_results = max_results
        self.min_prefix_length = min_prefix_length

    async def resolve(
        self,
        identifier: str,
        exact_only: bool = False,
    ) -> Identity | None:
        """식별자 → Identity

        Args:
            identifier: 핸들 또는 표시 이름 ('@' 접두사 허용)
            exact_only: True면 정확히 일치하는 단계만 사용

        Returns:
            Identity 또는 None
        """
        query = identifier.strip().lstrip("@").strip() if identifier else ""
        if not query:
            return None

        steps = [
            ("handle", self.directory.find_by_handle),
            ("display_name", self.directory.find_by_display_name),
        ]
        if not exact_only:
            steps += [
                ("partial_display_name", self.directory.find_by_partial_display_name),
                ("partial_handle", self.directory.find_by_partial_handle),
            ]

        for step_name, step in steps:
            identity = await step(query)
            if identity is not None:
                logger.debug(
                    "식별자 해석",
                    extra={"identifier": query, "step": step_name, "account_id": identity.account_id},
                )
                return identity

        return None

    async def search(
        self,
        prefix: str,
        exclude_account_id: str | None = None,
    ) -> list[Identity]:
        """접두사 검색

        입력이 최소 길이보다 짧으면 디렉토리를 조회하지 않고 빈 목록 반환.
        accountId 기준 중복 제거, 최대 max_results개, 아바타 포함.
        """
        query = prefix.strip().lstrip("@") if prefix else ""
        if len(query) < self.min_prefix_length:
            return []

        # 중복/본인 제외 후에도 한도를 채울 수 있도록 여유분 조회
        rows = await self.directory.search_prefix(query, self.max_results * 2)

        seen: set[str] = set()
        results: list[Identity] = []
        for identity in rows:
            if identity.account_id in seen or identity.account_id == exclude_account_id:
                continue
            seen.add(identity.account_id)
            results.append(with_avatar(identity))
            if len(results) >= self.max_results:
                break

        return results
