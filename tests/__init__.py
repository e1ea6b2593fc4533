"""
Test suite for Echo Wallet voice commands.

This package contains tests for all core functionality including:
- Transcript normalization and lexicon loading
- Amount validation and intent parsing
- Contact book lookup and recipient resolution
- The transfer dialogue and the voice session hosting it
- Speech adapters, configuration and the CLI
"""
