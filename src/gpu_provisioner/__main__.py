"""Allow ``python -m gpu_provisioner``."""

import sys

from gpu_provisioner.adapters.inbound.cli import main

sys.exit(main())
