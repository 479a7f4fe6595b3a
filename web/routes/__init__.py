"""
API 라우트 패키지

각 기능별 라우터 모듈:
- health: 헬스 체크
- wallet: 잔고/트랜잭션 조회, 이체, 입금
- users: 사용자 검색/해석
"""
