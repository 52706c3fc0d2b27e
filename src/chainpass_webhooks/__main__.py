from chainpass_webhooks.main import main

main()
