"""
Entry point for running the assistant as a module:
    python -m voice_faq
"""

import asyncio
from .main import main

if __name__ == "__main__":
    asyncio.run(main())
