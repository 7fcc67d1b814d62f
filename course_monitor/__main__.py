import sys

from course_monitor.main import main

if __name__ == "__main__":
    sys.exit(main())
