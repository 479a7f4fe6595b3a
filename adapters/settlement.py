"""
memo 접두사 기반 정산 조회 라우팅

BLURT_DEPOSIT_* 은 Blurt 인덱서, PAYSTACK_DEPOSIT_* 은 Paystack 검증 API처럼
memo 형식에 따라 정산 출처를 선택. ISettlementSource Protocol 준수.
"""

import logging

from adapters.interfaces import ISettlementSource
from adapters.models import Settlement

logger = logging.getLogger(__name__)


class MemoRoutedSettlementSource:
    """memo 접두사 → 정산 출처

    Args:
        routes: {memo 접두사: 정산 출처}
        fallback: 일치하는 접두사가 없을 때 사용할 출처
    """

    def __init__(
        self,
        routes: dict[str, ISettlementSource],
        fallback: ISettlementSource | None = None,
    ):
        self.routes = dict(routes)
        self.fallback = fallback

    def source_for(self, memo: str) -> ISettlementSource | None:
        for prefix, source in self.routes.items():
            if memo.startswith(f"{prefix}_"):
                return source
        return self.fallback

    async def find_settlement(self, memo: str, destination: str) -> Settlement | None:
        source = self.source_for(memo)
        if source is None:
            logger.warning("정산 출처 없음", extra={"memo": memo})
            return None
        return await source.find_settlement(memo, destination)
