import sys

from folder_organizer.main import main

sys.exit(main())
