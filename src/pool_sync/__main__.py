from pool_sync.client.launcher import main

raise SystemExit(main())
