"""애플리케이션 잡 모듈 (load_jobs가 재귀적으로 import)"""
