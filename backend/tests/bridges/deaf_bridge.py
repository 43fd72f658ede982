"""Never reads stdin, so large frames back up in the pipe."""
import time

while True:
    time.sleep(1)
