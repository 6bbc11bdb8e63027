from snail_client.main import main

main()
