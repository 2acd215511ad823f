import sys

from measure_repository_test_kit.cli import main

sys.exit(main())
