from deploygate_action.upload_pipeline_main import main

raise SystemExit(main())
