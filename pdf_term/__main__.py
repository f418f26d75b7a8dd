# __main__.py
import sys

from pdf_term.main import main

sys.exit(main())
