from agentbridge.app import main

main()
