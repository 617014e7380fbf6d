from lnx.cli import main

raise SystemExit(main())
