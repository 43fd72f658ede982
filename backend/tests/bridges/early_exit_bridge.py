"""Exits with status 4 shortly after starting, without reading stdin."""
import sys
import time

time.sleep(0.3)
sys.exit(4)
