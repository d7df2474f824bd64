# telraam_client/common/__init__.py

from telraam_client.common.logger import setup_logger

__all__: list[str] = ['setup_logger']
