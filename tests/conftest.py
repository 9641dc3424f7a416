import os
import sys

# Test helpers in tests/fakes.py are imported as a top-level module
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
