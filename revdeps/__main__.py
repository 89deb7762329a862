from revdeps.modules.cli import main

raise SystemExit(main())
