"""Allow running as: python -m sales_intel"""

from sales_intel.cli import main

main()
